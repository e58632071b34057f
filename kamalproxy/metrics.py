"""Request metrics, collected in memory and exposed in Prometheus text format."""

from __future__ import annotations

import threading
from bisect import bisect_left
from collections import Counter, defaultdict
from datetime import timedelta
from itertools import accumulate
from typing import Callable, Union

_STANDARD_METHODS = frozenset({"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "CONNECT", "OPTIONS", "TRACE"})
DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

_REQUESTS = "kamal_proxy_http_requests_total"
_DURATION = "kamal_proxy_http_request_duration_seconds"
_INFLIGHT = "kamal_proxy_http_in_flight_requests"

Duration = Union[float, timedelta]


def normalize_method(method: str) -> str:
    """Return the method if it is a standard HTTP method, otherwise "OTHER"."""
    return method if method in _STANDARD_METHODS else "OTHER"


def _seconds(duration: Duration) -> float:
    return duration.total_seconds() if isinstance(duration, timedelta) else float(duration)


def _service(service: str) -> str:
    if not isinstance(service, str):
        raise TypeError(f"service must be a string, not {type(service).__name__}")
    return service


class NullTracker:
    """A tracker that checks its arguments and keeps nothing."""

    def track_request(self, service, method, status, duration) -> None:
        _service(service)
        _seconds(duration)

    def add_inflight_request(self, service) -> None:
        _service(service)

    def subtract_inflight_request(self, service) -> None:
        _service(service)


class MemoryTracker:
    """Counts requests, request durations and in-flight requests per service."""

    def __init__(self, buckets: tuple[float, ...] = DEFAULT_BUCKETS) -> None:
        self.buckets = tuple(sorted(buckets))
        self._lock = threading.Lock()
        self._requests: Counter = Counter()
        self._bucket_counts: dict[tuple, list[int]] = {}
        self._sums: dict[tuple, float] = defaultdict(float)
        self._inflight: dict[str, float] = defaultdict(float)

    def track_request(self, service, method, status, duration) -> None:
        seconds = _seconds(duration)
        key = (_service(service), normalize_method(method), str(status))
        with self._lock:
            self._requests[key] += 1
            counts = self._bucket_counts.setdefault(key, [0] * len(self.buckets))
            index = bisect_left(self.buckets, seconds)
            if index < len(counts):
                counts[index] += 1
            self._sums[key] += seconds

    def add_inflight_request(self, service) -> None:
        with self._lock:
            self._inflight[_service(service)] += 1

    def subtract_inflight_request(self, service) -> None:
        with self._lock:
            self._inflight[_service(service)] -= 1

    def render(self) -> str:
        """Return all collected metrics in Prometheus text exposition format."""
        lines: list[str] = []
        with self._lock:
            if self._requests:
                lines += _header(_REQUESTS, "HTTP requests processed, labeled by service, status code and method.", "counter")
                lines += [f"{_REQUESTS}{{{_labels(k)}}} {n}" for k, n in sorted(self._requests.items())]
                lines += _header(_DURATION, "Duration of HTTP requests, labeled by service, status code and method.", "histogram")
                for key, counts in sorted(self._bucket_counts.items()):
                    labels, total = _labels(key), self._requests[key]
                    for bound, count in zip(self.buckets, accumulate(counts)):
                        lines.append(f'{_DURATION}_bucket{{{labels},le="{_format(bound)}"}} {count}')
                    lines.append(f'{_DURATION}_bucket{{{labels},le="+Inf"}} {total}')
                    lines.append(f"{_DURATION}_sum{{{labels}}} {_format(self._sums[key])}")
                    lines.append(f"{_DURATION}_count{{{labels}}} {total}")
            if self._inflight:
                lines += _header(_INFLIGHT, "Number of in-flight HTTP requests, labeled by service.", "gauge")
                lines += [f'{_INFLIGHT}{{service="{_escape(s)}"}} {_format(v)}' for s, v in sorted(self._inflight.items())]
        return "".join(line + "\n" for line in lines)


def _header(name: str, help_text: str, kind: str) -> list[str]:
    return [f"# HELP {name} {help_text}", f"# TYPE {name} {kind}"]


def _labels(key: tuple[str, str, str]) -> str:
    service, method, status = map(_escape, key)
    return f'service="{service}",method="{method}",status="{status}"'


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _format(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else repr(float(value))


_tracker: Union[NullTracker, MemoryTracker] = NullTracker()


def get_tracker() -> Union[NullTracker, MemoryTracker]:
    """Return the tracker currently collecting metrics."""
    return _tracker


def enable() -> Callable:
    """Start collecting metrics; return a handler that serves them."""
    global _tracker
    tracker = _tracker = MemoryTracker()

    def handler(writer, request) -> None:
        writer.headers.set("Content-Type", "text/plain; version=0.0.4; charset=utf-8")
        writer.write_header(200)
        writer.write(tracker.render().encode("utf-8"))

    return handler