import re
import time
import uuid

from kamalproxy.httpkit import (
    Headers,
    Request,
    RequestIDMiddleware,
    RequestStartMiddleware,
    ResponseRecorder,
    http_error,
    status_text,
)


def test_request_id_added_when_not_present():
    seen = []
    handler = RequestIDMiddleware(lambda w, r: seen.append(r.headers.get("X-Request-ID")))

    rec = ResponseRecorder()
    handler(rec, Request("GET", "/"))

    assert rec.code == 200
    assert seen[0] != ""
    assert uuid.UUID(seen[0]).version == 4


def test_request_id_preserves_existing_header():
    seen = []
    handler = RequestIDMiddleware(lambda w, r: seen.append(r.headers.get("X-Request-ID")))

    req = Request("GET", "/")
    req.headers.set("X-Request-ID", "1234")
    rec = ResponseRecorder()
    handler(rec, req)

    assert seen == ["1234"]
    assert rec.code == 200


def test_request_start_adds_unix_milli_when_not_present():
    seen = []
    handler = RequestStartMiddleware(lambda w, r: seen.append(r.headers.get("X-Request-Start")))

    rec = ResponseRecorder()
    handler(rec, Request("GET", "/"))

    value = seen[0]
    assert re.fullmatch(r"t=\d+", value)
    started = int(value[2:]) / 1000
    assert abs(time.time() - started) < 1.0
    assert rec.code == 200


def test_request_start_preserves_existing_header():
    seen = []
    handler = RequestStartMiddleware(lambda w, r: seen.append(r.headers.get("X-Request-Start")))

    req = Request("GET", "/")
    req.headers.set("X-Request-Start", "t=1234")
    rec = ResponseRecorder()
    handler(rec, req)

    assert seen == ["t=1234"]
    assert rec.code == 200


def test_headers_are_case_insensitive():
    headers = Headers()
    headers.set("x-custom", "hello")
    headers.add("X-CUSTOM", "again")

    assert headers.get("X-Custom") == "hello"
    assert headers.get_all("x-custom") == ["hello", "again"]
    assert "X-Custom" in list(headers)

    headers.delete("X-Custom")
    assert headers.get("x-custom") == ""
    assert headers.get_all("x-custom") == []


def test_headers_from_mapping():
    headers = Headers({"cookie": ["a=1", "b=2"], "user-agent": "Robot/1"})
    assert headers.get_all("Cookie") == ["a=1", "b=2"]
    assert headers.get("User-Agent") == "Robot/1"


def test_request_parses_url_and_body():
    req = Request("POST", "http://app.example.com/somepath?q=ok", body=b"hello")

    assert req.host == "app.example.com"
    assert req.path == "/somepath"
    assert req.query == "q=ok"
    assert req.content_length == 5
    assert req.body.read() == b"hello"
    assert req.tls is False


def test_request_cookie_lookup():
    req = Request(headers={"Cookie": 'one=1; kamal-rollout="abc"'})

    assert req.cookie("one") == "1"
    assert req.cookie("kamal-rollout") == "abc"
    assert req.cookie("missing") is None


def test_http_error_writes_plain_text():
    rec = ResponseRecorder()
    http_error(rec, status_text(418), 418)

    assert rec.code == 418
    assert rec.headers.get("Content-Type") == "text/plain; charset=utf-8"
    assert rec.text == "I'm a teapot\n"


def test_status_text():
    assert status_text(404) == "Not Found"
    assert status_text(413) == "Request Entity Too Large"
    assert status_text(999) == ""


def test_recorder_keeps_first_status_and_tracks_flush():
    rec = ResponseRecorder()
    rec.write_header(201)
    rec.write_header(500)
    rec.write(b"abc")
    rec.flush()

    assert rec.code == 201
    assert bytes(rec.body) == b"abc"
    assert rec.flushed is True


def test_recorder_write_implies_ok():
    rec = ResponseRecorder()
    assert rec.write(b"data") == 4
    assert rec.code == 200
    assert rec.header_written is True