"""A small example upstream server that greets each request."""

from __future__ import annotations

import argparse
import logging
import socket
from datetime import datetime
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from kamalproxy.httpkit import Handler, Headers, Request, ResponseRecorder, ResponseWriter

log = logging.getLogger(__name__)

TARGET_HEADER = "X-Kamal-Target"


def _now_rfc3339() -> str:
    stamp = datetime.now().astimezone().isoformat(timespec="seconds")
    return stamp[:-6] + "Z" if stamp.endswith("+00:00") else stamp


def _up_handler(writer: ResponseWriter, request: Request) -> None:
    log.info("Health request: method=%s path=%s", request.method, request.path)
    writer.write_header(200)


def make_handler(host: str) -> Handler:
    """Return a handler greeting from the target named in the request, or ``host``.

    A target named by a request is remembered for later requests that name none.
    """

    def handler(writer: ResponseWriter, request: Request) -> None:
        nonlocal host
        host = request.headers.get(TARGET_HEADER) or host

        writer.headers.add("Content-Type", "text/html")
        body = f"<body>Hello from <strong>{host}</strong> at <strong>{_now_rfc3339()}</strong></body>\n"
        writer.write(body.encode("utf-8"))

        log.info(
            "Request: host=%s request_id=%s method=%s path=%s query=%s",
            host,
            request.headers.get("X-Request-ID"),
            request.method,
            request.path,
            request.query,
        )

    return handler


def _router(host: str) -> Handler:
    hello = make_handler(host)

    def app(writer: ResponseWriter, request: Request) -> None:
        (_up_handler if request.path == "/up" else hello)(writer, request)

    return app


def _make_server(bind: str, port: int, host: str) -> ThreadingHTTPServer:
    app = _router(host)

    class _RequestHandler(BaseHTTPRequestHandler):
        def _dispatch(self) -> None:
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length) if length else b""
            headers = Headers()
            for name, value in self.headers.items():
                headers.add(name, value)
            request_host = self.headers.get("Host") or "localhost"
            request = Request(
                method=self.command,
                url=f"http://{request_host}{self.path}",
                headers=headers,
                body=body,
                remote_addr=f"{self.client_address[0]}:{self.client_address[1]}",
                proto=self.request_version,
            )

            recorder = ResponseRecorder()
            app(recorder, request)

            self.send_response(recorder.code)
            for name, values in recorder.headers.items():
                for value in values:
                    self.send_header(name, value)
            self.send_header("Content-Length", str(len(recorder.body)))
            self.end_headers()
            if self.command != "HEAD":
                self.wfile.write(bytes(recorder.body))

        do_GET = do_HEAD = do_POST = do_PUT = do_PATCH = do_DELETE = do_OPTIONS = _dispatch

        def log_message(self, format: str, *args: object) -> None:
            pass

    server = ThreadingHTTPServer((bind, port), _RequestHandler)
    server.daemon_threads = True
    return server


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Example upstream server")
    parser.add_argument("--bind", default="", help="address to listen on")
    parser.add_argument("--port", type=int, default=80, help="port to listen on")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    server = _make_server(args.bind, args.port, socket.gethostname())
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
    return 0