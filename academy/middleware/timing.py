"""
Request timing middleware.

Every response carries ``X-Request-ID`` (echoed from the caller or minted
here) and ``X-Request-Duration-Ms``. One access-log record is written per
API request: DEBUG normally, WARNING above ``SLOW_REQUEST_MS``, ERROR on 5xx.
"""

import logging
import time
import uuid

from flask import Flask, current_app, g, request

logger = logging.getLogger(__name__)

# Hit by load balancers every few seconds
_QUIET_PATHS = frozenset({"/api/v1/public/health"})


def _level_for(status: int, duration_ms: float) -> int:
    if status >= 500:
        return logging.ERROR
    if duration_ms > current_app.config.get("SLOW_REQUEST_MS", 1000):
        return logging.WARNING
    return logging.DEBUG


def init_request_timing(app: Flask):
    """Register the request-id and access-log hooks."""

    @app.before_request
    def _start_timer():
        g.request_started = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]

    @app.after_request
    def _access_log(response):
        started = g.pop("request_started", None)
        if started is None:
            return response

        elapsed = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed:.1f}"

        if request.path in _QUIET_PATHS or not request.path.startswith("/api/"):
            return response

        logger.log(
            _level_for(response.status_code, elapsed),
            "%s %s -> %d in %.0fms",
            request.method, request.full_path.rstrip("?"), response.status_code, elapsed,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": round(elapsed, 1),
                "remote_addr": request.remote_addr,
            },
        )
        return response
