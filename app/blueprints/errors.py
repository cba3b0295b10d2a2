"""
JSON error handlers for workflow exceptions.

One handler per exception type; every handler answers with the standard
``{"error", "code", "details"?}`` body built by ``api_error``.
"""

import logging

from flask import request

from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PartialFailureError,
    RepositoryError,
    ValidationError,
)
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def register_error_handlers(app):

    @app.errorhandler(NotFoundError)
    def _not_found(exc):
        return api_error(E.NOT_FOUND, str(exc), details={"resource": exc.resource, "id": exc.resource_id})

    @app.errorhandler(ForbiddenError)
    def _forbidden(exc):
        return api_error(E.FORBIDDEN, str(exc), details={"resource": exc.resource, "action": exc.action})

    @app.errorhandler(InvalidTransitionError)
    def _invalid_transition(exc):
        return api_error(E.CONFLICT_STATE, str(exc), details={"current_status": exc.current_status})

    @app.errorhandler(ConflictError)
    def _conflict(exc):
        return api_error(E.CONFLICT_CONCURRENT, str(exc))

    @app.errorhandler(PartialFailureError)
    def _partial_failure(exc):
        return api_error(
            E.PARTIAL_FAILURE, str(exc),
            details={
                "stage": exc.stage.to_dict(),
                "pending_tasks": [spec.to_dict() for spec in exc.pending_tasks],
            },
        )

    @app.errorhandler(ValidationError)
    def _validation(exc):
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details)

    @app.errorhandler(RepositoryError)
    def _repository(exc):
        logger.error("Repository error: %s", exc)
        return api_error(E.DATABASE, "Database error")

    @app.errorhandler(404)
    def _route_not_found(exc):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def _method_not_allowed(exc):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(429)
    def _rate_limited(exc):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"retry_after": exc.description})

    @app.errorhandler(500)
    def _internal(exc):
        logger.error("500 error: %s", exc, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
