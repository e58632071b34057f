from datetime import timedelta

import pytest

from kamalproxy import metrics
from kamalproxy.httpkit import Request, ResponseRecorder
from kamalproxy.metrics import MemoryTracker, normalize_method


@pytest.fixture
def restore_tracker(monkeypatch):
    monkeypatch.setattr(metrics, "_tracker", metrics.NullTracker())


@pytest.mark.parametrize(
    "method,expected",
    [
        ("GET", "GET"),
        ("POST", "POST"),
        ("PATCH", "PATCH"),
        ("CUSTOM", "OTHER"),
        ("OTHER", "OTHER"),
        ("", "OTHER"),
    ],
)
def test_normalize_method(method, expected):
    assert normalize_method(method) == expected


def test_request_counter():
    tracker = MemoryTracker()
    tracker.track_request("app", "CUSTOM", 200, 0.01)
    tracker.track_request("app", "CUSTOM", 200, 0.01)

    output = tracker.render()
    assert "# TYPE kamal_proxy_http_requests_total counter" in output
    assert 'kamal_proxy_http_requests_total{service="app",method="OTHER",status="200"} 2\n' in output


def test_duration_histogram():
    tracker = MemoryTracker()
    tracker.track_request("app", "GET", 404, timedelta(milliseconds=300))

    lines = tracker.render().splitlines()
    labels = 'service="app",method="GET",status="404"'
    assert f'kamal_proxy_http_request_duration_seconds_bucket{{{labels},le="0.25"}} 0' in lines
    assert f'kamal_proxy_http_request_duration_seconds_bucket{{{labels},le="0.5"}} 1' in lines
    assert f'kamal_proxy_http_request_duration_seconds_bucket{{{labels},le="+Inf"}} 1' in lines
    assert f"kamal_proxy_http_request_duration_seconds_sum{{{labels}}} 0.3" in lines
    assert f"kamal_proxy_http_request_duration_seconds_count{{{labels}}} 1" in lines


def test_inflight_gauge():
    tracker = MemoryTracker()
    tracker.add_inflight_request("app")
    tracker.add_inflight_request("app")
    tracker.subtract_inflight_request("app")

    assert 'kamal_proxy_http_in_flight_requests{service="app"} 1\n' in tracker.render()


def test_label_values_are_escaped():
    tracker = MemoryTracker()
    tracker.add_inflight_request('a"b')

    assert 'service="a\\"b"' in tracker.render()


def test_enable_serves_fresh_metrics(restore_tracker):
    metrics.get_tracker().track_request("ignored", "GET", 200, 0.1)

    handler = metrics.enable()
    assert metrics.get_tracker().render() == ""

    metrics.get_tracker().track_request("web", "GET", 200, 0.1)
    rec = ResponseRecorder()
    handler(rec, Request())

    assert rec.code == 200
    assert rec.headers.get("Content-Type").startswith("text/plain")
    assert 'kamal_proxy_http_requests_total{service="web",method="GET",status="200"} 1' in rec.text
    assert "ignored" not in rec.text