"""HTTP request and response primitives, and the request-tagging middlewares."""

from __future__ import annotations

import io
import string
import time
import uuid
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import BinaryIO, Callable, Iterator, Mapping, Protocol, Union
from urllib.parse import urlsplit

REQUEST_ID_HEADER = "X-Request-ID"
REQUEST_START_HEADER = "X-Request-Start"

_TOKEN_CHARS = frozenset(string.ascii_letters + string.digits + "!#$%&'*+-.^_`|~")
_STATUS_TEXT = {s.value: s.phrase for s in HTTPStatus} | {
    413: "Request Entity Too Large",
    418: "I'm a teapot",
}


def status_text(code: int) -> str:
    """Return the reason phrase for a status code, or an empty string."""
    return _STATUS_TEXT.get(code, "")


def _canonical_key(name: str) -> str:
    if not name or any(c not in _TOKEN_CHARS for c in name):
        return name
    return "-".join(part[:1].upper() + part[1:].lower() for part in name.split("-"))


class Headers:
    """A case-insensitive multi-valued header map."""

    def __init__(self, initial: Mapping[str, Union[str, list]] | None = None) -> None:
        self._values: dict[str, list[str]] = {}
        for name, value in (initial or {}).items():
            for item in [value] if isinstance(value, str) else value:
                self.add(name, item)

    def get(self, name: str) -> str:
        values = self._values.get(_canonical_key(name))
        return values[0] if values else ""

    def get_all(self, name: str) -> list[str]:
        return list(self._values.get(_canonical_key(name), []))

    def set(self, name: str, value: str) -> None:
        self._values[_canonical_key(name)] = [value]

    def add(self, name: str, value: str) -> None:
        self._values.setdefault(_canonical_key(name), []).append(value)

    def delete(self, name: str) -> None:
        self._values.pop(_canonical_key(name), None)

    def items(self) -> Iterator[tuple[str, list[str]]]:
        return ((name, list(values)) for name, values in self._values.items())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and _canonical_key(name) in self._values


@dataclass
class Request:
    """An incoming HTTP request."""

    method: str = "GET"
    url: str = "/"
    headers: Headers = field(default_factory=Headers)
    body: Union[bytes, BinaryIO] = b""
    remote_addr: str = "192.0.2.1:1234"
    proto: str = "HTTP/1.1"
    tls: bool = False
    content_length: int | None = None
    context: dict = field(default_factory=dict)
    host: str = field(init=False)
    path: str = field(init=False)
    query: str = field(init=False)

    def __post_init__(self) -> None:
        if not isinstance(self.headers, Headers):
            self.headers = Headers(self.headers)
        parts = urlsplit(self.url)
        self.host = parts.netloc or "example.com"
        self.path, self.query = parts.path, parts.query
        self.tls = self.tls or parts.scheme == "https"
        if isinstance(self.body, (bytes, bytearray)):
            if self.content_length is None:
                self.content_length = len(self.body)
            self.body = io.BytesIO(bytes(self.body))
        elif self.content_length is None:
            self.content_length = -1

    def cookie(self, name: str) -> str | None:
        """Return the value of the named cookie, or None when it is absent."""
        for line in self.headers.get_all("Cookie"):
            for part in line.split(";"):
                key, sep, value = part.strip().partition("=")
                if sep and key == name:
                    if len(value) > 1 and value[0] == value[-1] == '"':
                        value = value[1:-1]
                    return value
        return None


class ResponseWriter(Protocol):
    headers: Headers

    def write_header(self, status_code: int) -> None: ...

    def write(self, data: bytes) -> int: ...

    def flush(self) -> None: ...


Handler = Callable[[ResponseWriter, Request], None]


class ResponseRecorder:
    """A response writer that records everything written to it."""

    def __init__(self) -> None:
        self.headers = Headers()
        self.code = 200
        self.body = bytearray()
        self.flushed = False
        self.header_written = False

    def write_header(self, status_code: int) -> None:
        if not self.header_written:
            self.code = status_code
            self.header_written = True

    def write(self, data: bytes) -> int:
        self.write_header(200)
        self.body.extend(data)
        return len(data)

    def flush(self) -> None:
        self.write_header(200)
        self.flushed = True

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


def http_error(writer: ResponseWriter, message: str, code: int) -> None:
    """Reply with a plain-text error message and status code."""
    writer.headers.delete("Content-Length")
    writer.headers.set("Content-Type", "text/plain; charset=utf-8")
    writer.headers.set("X-Content-Type-Options", "nosniff")
    writer.write_header(code)
    writer.write((message + "\n").encode("utf-8"))


class RequestIDMiddleware:
    """Adds a random request ID header when the request has none."""

    def __init__(self, next_handler: Handler) -> None:
        self.next = next_handler

    def __call__(self, writer: ResponseWriter, request: Request) -> None:
        if not request.headers.get(REQUEST_ID_HEADER):
            request.headers.set(REQUEST_ID_HEADER, str(uuid.uuid4()))
        self.next(writer, request)


class RequestStartMiddleware:
    """Stamps the request with its arrival time in Unix milliseconds."""

    def __init__(self, next_handler: Handler) -> None:
        self.next = next_handler

    def __call__(self, writer: ResponseWriter, request: Request) -> None:
        if not request.headers.get(REQUEST_START_HEADER):
            request.headers.set(REQUEST_START_HEADER, f"t={time.time_ns() // 1_000_000}")
        self.next(writer, request)