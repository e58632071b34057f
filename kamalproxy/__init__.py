"""Middleware, buffering, pause and rollout control, health checks and metrics for an HTTP proxy."""

__version__ = "0.1.0"

__all__ = [
    "buffer",
    "buffering",
    "cert",
    "cli",
    "config",
    "errorpages",
    "healthcheck",
    "httpkit",
    "metrics",
    "pause",
    "requestlog",
    "rollout",
    "upstream",
]