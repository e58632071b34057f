"""Middlewares that buffer request and response bodies."""

from __future__ import annotations

import contextlib
import logging

from kamalproxy.buffer import Buffer, MaximumSizeExceededError, buffered_reader
from kamalproxy.httpkit import Handler, Headers, Request, ResponseWriter, http_error

log = logging.getLogger(__name__)


class RequestBufferMiddleware:
    """Reads the whole request body into a buffer before passing it on."""

    def __init__(self, max_mem_bytes: int, max_bytes: int, next_handler: Handler) -> None:
        self.max_mem_bytes = max_mem_bytes
        self.max_bytes = max_bytes
        self.next = next_handler

    def __call__(self, writer: ResponseWriter, request: Request) -> None:
        try:
            buffer = buffered_reader(request.body, self.max_bytes, self.max_mem_bytes)
        except MaximumSizeExceededError:
            http_error(writer, "Request too large", 413)
            return
        except OSError as exc:
            log.error("Error buffering request %s: %s", request.path, exc)
            http_error(writer, "Internal Server Error", 500)
            return

        with buffer:
            request.body = buffer
            self.next(writer, request)


class BufferedResponseWriter:
    """Collects a response in a buffer, unless the response is a stream."""

    def __init__(self, writer: ResponseWriter, buffer: Buffer | None = None) -> None:
        self._writer = writer
        self.buffer = buffer if buffer is not None else Buffer()
        self.status_code = 200
        self.header_written = False
        self.bypass = False

    @property
    def headers(self) -> Headers:
        return self._writer.headers

    def send(self) -> None:
        """Write the buffered status and body to the underlying writer."""
        if self.buffer.overflowed:
            raise MaximumSizeExceededError()
        if self.header_written:
            self._writer.write_header(self.status_code)
        self.buffer.send(self._writer)

    def write_header(self, status_code: int) -> None:
        if self.header_written:
            return
        self.status_code = status_code
        self.header_written = True
        if self.should_switch_to_unbuffered():
            self.switch_to_unbuffered()

    def should_switch_to_unbuffered(self) -> bool:
        content_type = self.headers.get("Content-Type").partition(";")[0]
        if content_type == "text/event-stream":
            return True
        return self.headers.get("Transfer-Encoding") == "chunked"

    def switch_to_unbuffered(self) -> None:
        self.bypass = True
        with contextlib.suppress(MaximumSizeExceededError, OSError):
            self.send()

    def write(self, data: bytes) -> int:
        if self.bypass:
            return self._writer.write(data)
        try:
            return self.buffer.write(data)
        except MaximumSizeExceededError:
            # The overflow is reported when the buffer is sent.
            return len(data)

    def flush(self) -> None:
        if self.bypass:
            flush = getattr(self._writer, "flush", None)
            if flush is not None:
                flush()


class ResponseBufferMiddleware:
    """Buffers the downstream response before sending it to the client."""

    def __init__(self, max_mem_bytes: int, max_bytes: int, next_handler: Handler) -> None:
        self.max_mem_bytes = max_mem_bytes
        self.max_bytes = max_bytes
        self.next = next_handler

    def __call__(self, writer: ResponseWriter, request: Request) -> None:
        with Buffer(self.max_bytes, self.max_mem_bytes) as buffer:
            response = BufferedResponseWriter(writer, buffer)
            self.next(response, request)

            try:
                response.send()
            except MaximumSizeExceededError:
                log.info("Response exceeded max response limit: %s", request.path)
                http_error(writer, "Internal Server Error", 500)
            except OSError as exc:
                log.error("Error sending response %s: %s", request.path, exc)
                http_error(writer, "Internal Server Error", 500)