"""Periodic HTTP health checks of a target endpoint."""

from __future__ import annotations

import http.client
import ipaddress
import logging
import threading
import urllib.error
import urllib.request
from typing import Protocol
from urllib.parse import urlsplit

log = logging.getLogger(__name__)

USER_AGENT = "kamal-proxy"


class HealthCheckTimeoutError(Exception):
    """Raised when a health check request does not complete in time."""

    def __init__(self, message: str = "request timed out") -> None:
        super().__init__(message)


class HealthCheckStatusError(Exception):
    """Raised when a health check answers with a status outside 2xx."""

    def __init__(self, status: int) -> None:
        super().__init__(f"unexpected status ({status})")
        self.status = status


class HealthCheckConsumer(Protocol):
    def health_check_completed(self, success: bool) -> None: ...


def _is_loopback(host: str | None) -> bool:
    try:
        return host == "localhost" or ipaddress.ip_address(host or "").is_loopback
    except ValueError:
        return False


class HealthCheck:
    """Checks ``endpoint`` straight away and then every ``interval`` seconds,
    reporting each result to ``consumer.health_check_completed``."""

    def __init__(self, consumer: HealthCheckConsumer, endpoint: str, interval: float, timeout: float) -> None:
        self.consumer = consumer
        self.endpoint = endpoint
        self.interval = interval
        self.timeout = timeout
        # Loopback targets are never reached through a proxy.
        handlers = [urllib.request.ProxyHandler({})] if _is_loopback(urlsplit(endpoint).hostname) else []
        self._opener = urllib.request.build_opener(*handlers)
        self._closed = threading.Event()
        threading.Thread(target=self._run, name="health-check", daemon=True).start()

    def close(self) -> None:
        """Stop checking; a check in progress is abandoned."""
        self._closed.set()

    def _run(self) -> None:
        self._check()
        while not self._closed.wait(self.interval):
            self._check()

    def _check(self) -> None:
        request = urllib.request.Request(self.endpoint, headers={"User-Agent": USER_AGENT}, method="GET")
        try:
            with self._opener.open(request, timeout=self.timeout) as response:
                response.read()
                status = response.status
        except urllib.error.HTTPError as exc:
            exc.close()
            status = exc.code
        except (OSError, ValueError, http.client.HTTPException) as exc:
            if self._closed.is_set():
                return
            reason = getattr(exc, "reason", exc)
            timed_out = isinstance(exc, TimeoutError) or isinstance(reason, TimeoutError)
            self._report(False, HealthCheckTimeoutError() if timed_out else exc)
            return

        if not 200 <= status <= 299:
            self._report(False, HealthCheckStatusError(status))
        else:
            self._report(True, None)

    def _report(self, success: bool, error: Exception | None) -> None:
        if not success:
            log.info("Healthcheck failed: url=%s error=%s", self.endpoint, error)
        self.consumer.health_check_completed(success)