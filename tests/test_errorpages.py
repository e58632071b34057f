from dataclasses import dataclass

import pytest

from kamalproxy.errorpages import (
    ErrorPageMiddleware,
    ErrorPagesUnavailableError,
    set_error_response,
)
from kamalproxy.httpkit import Request, ResponseRecorder, http_error, status_text

DEFAULT_PAGES = {
    "404.html": "<body><h1>Not Found</h1></body>",
    "503.html": (
        "<body><h1>Service Temporarily Unavailable</h1>"
        "{% if Message %}<p>{{ Message }}</p>{% endif %}</body>"
    ),
    "notes.txt": "not a template",
}


@dataclass
class Lunch:
    Message: str


def run(middleware):
    request = Request("GET", "http://example.com")
    recorder = ResponseRecorder()
    middleware(recorder, request)
    return recorder.code, recorder.headers.get("Content-Type"), recorder.text


def check(handler):
    return run(ErrorPageMiddleware(DEFAULT_PAGES, True, handler))


def check_nested(handler):
    custom = {"404.html": "<body>Custom 404</body>"}
    inner = ErrorPageMiddleware(custom, False, handler)
    return run(ErrorPageMiddleware(DEFAULT_PAGES, True, inner))


def test_custom_error_response():
    status, content_type, body = check(lambda w, r: set_error_response(w, r, 404, None))
    assert status == 404
    assert content_type == "text/html; charset=utf-8"
    assert "Not Found" in body


def test_template_arguments_in_error_response():
    status, content_type, body = check(
        lambda w, r: set_error_response(w, r, 503, Lunch("Gone to lunch"))
    )
    assert status == 503
    assert content_type == "text/html; charset=utf-8"
    assert "Service Temporarily Unavailable" in body
    assert "Gone to lunch" in body


def test_template_arguments_as_mapping_are_escaped():
    _, _, body = check(lambda w, r: set_error_response(w, r, 503, {"Message": "<b>soon</b>"}))
    assert "&lt;b&gt;soon&lt;/b&gt;" in body


def test_error_without_template():
    status, content_type, body = check(lambda w, r: set_error_response(w, r, 418, None))
    assert status == 418
    assert content_type == "text/html; charset=utf-8"
    assert body == "<h1>418 I'm a teapot</h1>"


def test_backend_returning_error_normally():
    status, content_type, body = check(lambda w, r: http_error(w, status_text(418), 418))
    assert status == 418
    assert content_type == "text/plain; charset=utf-8"
    assert "I'm a teapot" in body


def test_nested_error_in_inner_pages():
    status, content_type, body = check_nested(lambda w, r: set_error_response(w, r, 404, None))
    assert status == 404
    assert content_type == "text/html; charset=utf-8"
    assert "Custom 404" in body
    assert "Not Found" not in body


def test_nested_error_not_in_inner_pages():
    status, content_type, body = check_nested(
        lambda w, r: set_error_response(w, r, 503, Lunch("Gone to lunch"))
    )
    assert status == 503
    assert content_type == "text/html; charset=utf-8"
    assert "Service Temporarily Unavailable" in body
    assert "Gone to lunch" in body


def test_nested_error_not_in_any_pages():
    status, content_type, body = check_nested(lambda w, r: set_error_response(w, r, 418, None))
    assert status == 418
    assert content_type == "text/html; charset=utf-8"
    assert "I'm a teapot" in body


def test_set_error_response_without_middleware_writes_plain_error():
    request = Request("GET", "http://example.com")
    recorder = ResponseRecorder()
    set_error_response(recorder, request, 404, None)
    assert recorder.code == 404
    assert recorder.headers.get("Content-Type") == "text/plain; charset=utf-8"
    assert recorder.text == "Not Found\n"


def test_successful_response_passes_through():
    def handler(w, r):
        w.write(b"hello")

    status, _, body = check(handler)
    assert status == 200
    assert body == "hello"


def test_pages_loaded_from_directory(tmp_path):
    (tmp_path / "404.html").write_text("<p>Missing page</p>", encoding="utf-8")
    middleware = ErrorPageMiddleware(tmp_path, True, lambda w, r: set_error_response(w, r, 404))
    status, _, body = run(middleware)
    assert status == 404
    assert body == "<p>Missing page</p>"


def test_templates_that_cannot_be_compiled():
    with pytest.raises(ErrorPagesUnavailableError):
        ErrorPageMiddleware({"404.html": "<body>{{ {{</body>"}, False, lambda w, r: None)


def test_pages_without_templates():
    with pytest.raises(ErrorPagesUnavailableError):
        ErrorPageMiddleware({}, False, lambda w, r: None)


def test_directory_without_templates(tmp_path):
    (tmp_path / "readme.txt").write_text("nothing", encoding="utf-8")
    with pytest.raises(ErrorPagesUnavailableError):
        ErrorPageMiddleware(tmp_path, False, lambda w, r: None)