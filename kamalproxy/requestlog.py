"""Structured request logging middleware."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from kamalproxy.httpkit import Handler, Headers, Request, ResponseWriter
from kamalproxy.metrics import get_tracker

_CONTEXT_KEY = "request-context"
LOG_FIELDS_ATTR = "log_fields"

_LEVEL_NAMES = {"WARNING": "WARN", "CRITICAL": "ERROR"}


@dataclass
class LoggingRequestContext:
    """Details that downstream handlers add to the request's log line."""

    service: str = ""
    target: str = ""
    request_headers: list[str] = field(default_factory=list)
    response_headers: list[str] = field(default_factory=list)


def logging_request_context(request: Request) -> LoggingRequestContext:
    """Return the request's logging context, or a detached empty one."""
    context = request.context.get(_CONTEXT_KEY)
    if isinstance(context, LoggingRequestContext):
        return context
    return LoggingRequestContext()


class JSONFormatter(logging.Formatter):
    """Formats records as single JSON objects, including any attached fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).astimezone().isoformat(),
            "level": _LEVEL_NAMES.get(record.levelname, record.levelname),
            "msg": record.getMessage(),
        }
        entry.update(getattr(record, LOG_FIELDS_ATTR, None) or {})
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class _LoggerResponseWriter:
    def __init__(self, writer: ResponseWriter) -> None:
        self._writer = writer
        self.status_code = 200
        self.bytes_written = 0

    @property
    def headers(self) -> Headers:
        return self._writer.headers

    def write_header(self, status_code: int) -> None:
        self.status_code = status_code
        self._writer.write_header(status_code)

    def write(self, data: bytes) -> int:
        written = self._writer.write(data)
        self.bytes_written += written
        return written

    def flush(self) -> None:
        flush = getattr(self._writer, "flush", None)
        if flush is not None:
            flush()


class LoggingMiddleware:
    """Logs one structured line per request and records request metrics."""

    def __init__(self, logger: logging.Logger, http_port: int, https_port: int, next_handler: Handler) -> None:
        self.logger = logger
        self.http_port = http_port
        self.https_port = https_port
        self.next = next_handler

    def __call__(self, writer: ResponseWriter, request: Request) -> None:
        response = _LoggerResponseWriter(writer)
        context = LoggingRequestContext()
        request.context[_CONTEXT_KEY] = context
        started = time.monotonic_ns()

        try:
            self.next(response, request)
        finally:
            self._log(request, response, context, time.monotonic_ns() - started)

    def _log(
        self,
        request: Request,
        response: _LoggerResponseWriter,
        context: LoggingRequestContext,
        elapsed_ns: int,
    ) -> None:
        if request.tls:
            port, scheme = self.https_port, "https"
        else:
            port, scheme = self.http_port, "http"

        try:
            client_addr, client_port = _split_host_port(request.remote_addr)
        except ValueError:
            client_addr, client_port = request.remote_addr, ""

        fields: dict[str, Any] = {
            "host": request.host,
            "port": port,
            "path": request.path,
            "request_id": request.headers.get("X-Request-ID"),
            "status": response.status_code,
            "service": context.service,
            "target": context.target,
            "duration": elapsed_ns,
            "method": request.method,
            "req_content_length": request.content_length,
            "req_content_type": request.headers.get("Content-Type"),
            "resp_content_length": response.bytes_written,
            "resp_content_type": response.headers.get("Content-Type"),
            "client_addr": client_addr,
            "client_port": client_port,
            "remote_addr": request.headers.get("X-Forwarded-For") or client_addr,
            "user_agent": request.headers.get("User-Agent"),
            "proto": request.proto,
            "scheme": scheme,
            "query": request.query,
        }
        fields.update(_custom_headers(context.request_headers, request.headers, "req"))
        fields.update(_custom_headers(context.response_headers, response.headers, "resp"))

        self.logger.info("Request", extra={LOG_FIELDS_ATTR: fields})
        get_tracker().track_request(context.service, request.method, response.status_code, elapsed_ns / 1e9)


def _custom_headers(names: list[str], headers: Headers, prefix: str) -> dict[str, str]:
    return {f"{prefix}_{name.lower().replace('-', '_')}": ",".join(headers.get_all(name)) for name in names}


def _split_host_port(address: str) -> tuple[str, str]:
    if address.startswith("["):
        host, sep, rest = address[1:].partition("]")
        if not sep or not rest.startswith(":"):
            raise ValueError(f"invalid address {address!r}")
        return host, rest[1:]

    host, sep, port = address.rpartition(":")
    if not sep or ":" in host:
        raise ValueError(f"invalid address {address!r}")
    return host, port