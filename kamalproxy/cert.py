"""Certificates loaded from files on disk."""

from __future__ import annotations

import logging
import ssl
from typing import TypeVar

log = logging.getLogger(__name__)

H = TypeVar("H")


class CertificateLoadError(Exception):
    """Raised when a certificate and key pair cannot be loaded."""

    def __init__(self, message: str = "unable to load certificate") -> None:
        super().__init__(message)


class StaticCertManager:
    """Serves one certificate, loaded from PEM files, for every server name."""

    def __init__(self, certificate_path: str, private_key_path: str) -> None:
        self.certificate_path = certificate_path
        self.private_key_path = private_key_path

        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        try:
            context.load_cert_chain(certificate_path, private_key_path)
        except (OSError, ssl.SSLError) as exc:
            log.error("Error loading TLS certificate: %s", exc)
            raise CertificateLoadError() from exc
        self._context = context

    def get_certificate(self, server_name: str | None) -> ssl.SSLContext:
        """Return the TLS context holding the loaded certificate."""
        return self._context

    def http_handler(self, handler: H) -> H:
        """Return the handler as it is: static certificates need no HTTP challenges."""
        if not callable(handler):
            raise TypeError("handler must be callable")
        return handler