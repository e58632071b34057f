"""Middleware that renders HTML error pages from templates."""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import jinja2

from kamalproxy.httpkit import Handler, Request, ResponseWriter, http_error, status_text

log = logging.getLogger(__name__)

_CONTEXT_KEY = "error-response"


class ErrorPagesUnavailableError(Exception):
    """Raised when error page templates cannot be found or compiled."""

    def __init__(self, message: str = "unable to load error pages") -> None:
        super().__init__(message)


@dataclass
class _ErrorResponse:
    status_code: int = 0
    template_arguments: Any = None


def set_error_response(writer: ResponseWriter, request: Request, status_code: int, template_arguments: Any = None) -> None:
    """Ask the enclosing error page middleware to render an error page.

    Without such a middleware, a plain-text error is written straight away.
    """
    error_response = request.context.get(_CONTEXT_KEY)
    if isinstance(error_response, _ErrorResponse):
        error_response.status_code = status_code
        error_response.template_arguments = template_arguments
    else:
        http_error(writer, status_text(status_code), status_code)


class ErrorPageMiddleware:
    """Renders ``<status>.html`` templates for error responses set downstream.

    ``pages`` is a directory or a mapping of file names to template text.
    """

    def __init__(self, pages, root: bool, next_handler: Handler) -> None:
        sources = _load_sources(pages)
        environment = jinja2.Environment(loader=jinja2.DictLoader(sources), autoescape=True)
        try:
            if not sources:
                raise jinja2.TemplateError("no templates found")
            self._templates = {name: environment.get_template(name) for name in sources}
        except jinja2.TemplateError as exc:
            log.error("Failed to parse error page templates: %s", exc)
            raise ErrorPagesUnavailableError() from exc
        self.root = root
        self.next = next_handler

    def __call__(self, writer: ResponseWriter, request: Request) -> None:
        error_response = request.context.setdefault(_CONTEXT_KEY, _ErrorResponse())
        self.next(writer, request)
        if error_response.status_code != 0 and self._respond(
            writer, error_response.status_code, error_response.template_arguments
        ):
            error_response.status_code = 0

    def _respond(self, writer: ResponseWriter, status_code: int, arguments: Any) -> bool:
        writer.headers.set("Content-Type", "text/html; charset=utf-8")
        writer.write_header(status_code)

        template = self._templates.get(f"{status_code}.html")
        if template is not None:
            try:
                writer.write(template.render(_template_context(arguments)).encode("utf-8"))
                return True
            except jinja2.TemplateError as exc:
                log.error("Failed to render error page template %s: %s", template.name, exc)

        if self.root:
            writer.write(f"<h1>{status_code} {status_text(status_code)}</h1>".encode("utf-8"))
            return True
        return False


def _load_sources(pages) -> dict[str, str]:
    if isinstance(pages, Mapping):
        return {
            name: text.decode("utf-8") if isinstance(text, bytes) else text
            for name, text in pages.items()
            if "/" not in name and fnmatch.fnmatchcase(name, "*.html")
        }
    try:
        return {path.name: path.read_text(encoding="utf-8") for path in Path(pages).glob("*.html") if path.is_file()}
    except OSError as exc:
        log.error("Failed to read error page templates: %s", exc)
        raise ErrorPagesUnavailableError() from exc


def _template_context(arguments: Any) -> dict[str, Any]:
    if arguments is None:
        return {}
    if isinstance(arguments, Mapping):
        return dict(arguments)
    if hasattr(arguments, "_asdict"):
        return dict(arguments._asdict())
    return dict(getattr(arguments, "__dict__", {}))