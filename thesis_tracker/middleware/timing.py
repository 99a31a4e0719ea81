"""
Request timing middleware.

Every response carries ``X-Request-ID`` (echoed from the request when the
client sent one) and ``X-Request-Duration-Ms``.  API requests are logged
with method, path, status and duration; probes are not.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Polled by orchestrators every few seconds
_QUIET_PATHS = frozenset({"/api/v1/health", "/api/v1/health/ready", "/api/v1/health/live"})

SLOW_THRESHOLD_MS = 1000


def _level_for(status: int, duration_ms: float) -> tuple[int, str]:
    if duration_ms > SLOW_THRESHOLD_MS:
        return logging.WARNING, "Slow request"
    if status >= 500:
        return logging.ERROR, "Server error"
    return logging.DEBUG, "Request"


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _stamp_and_log(response):
        started = getattr(g, "request_start", None)
        if started is None:
            return response

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"

        if request.path in _QUIET_PATHS or not request.path.startswith("/api/"):
            return response

        view_args = request.view_args or {}
        level, label = _level_for(response.status_code, elapsed_ms)
        logger.log(
            level, "%s: %s %s %d (%.0fms)",
            label, request.method, request.path, response.status_code, elapsed_ms,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": elapsed_ms,
                "remote_addr": request.remote_addr,
                "request_id": g.request_id,
                "week_id": view_args.get("week_id"),
                "entity_type": view_args.get("kind"),
            },
        )
        return response
