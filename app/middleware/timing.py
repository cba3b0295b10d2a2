"""
Request timing middleware.

Tags every request with an id and the workflow context it targets
(``stage_id`` / ``task_id`` / ``actor_id`` from the URL or the JSON body),
records its duration and logs it. Adds X-Request-Duration-Ms and
X-Request-ID headers to all responses.

``g.log_context`` is also read by ``RequestContextFilter``, so records
logged by services during the request carry the same context.
"""

import logging
import time
import uuid

from flask import Flask, g, request

from app.middleware.logging_config import CONTEXT_FIELDS

logger = logging.getLogger(__name__)

# Health checks are polled constantly
_SKIP_LOG = frozenset({"/api/health/live", "/api/health/ready"})

SLOW_THRESHOLD_MS = 1000

# JSON body key -> log field
_BODY_KEYS = (("stageId", "stage_id"), ("taskId", "task_id"), ("actorId", "actor_id"))


def request_log_context() -> dict:
    """Workflow ids addressed by the current request."""
    context = {k: v for k, v in (request.view_args or {}).items() if k in CONTEXT_FIELDS}
    body = request.get_json(silent=True) if request.is_json else None
    if isinstance(body, dict):
        for key, field in _BODY_KEYS:
            value = body.get(key)
            if value and isinstance(value, str):
                context.setdefault(field, value)
    return context


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing and log context."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex[:12])
        g.log_context = request_log_context()

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = g.request_id

        if request.path in _SKIP_LOG:
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "remote_addr": request.remote_addr,
            "request_id": g.request_id,
            **getattr(g, "log_context", {}),
        }
        if response.status_code >= 500:
            level = logging.ERROR
        elif duration_ms > SLOW_THRESHOLD_MS:
            level = logging.WARNING
        elif extra.keys() & {"stage_id", "task_id"}:
            level = logging.INFO
        else:
            level = logging.DEBUG
        logger.log(level, "%s %s %d (%.0fms)", request.method, request.path,
                   response.status_code, duration_ms, extra=extra)
        return response
