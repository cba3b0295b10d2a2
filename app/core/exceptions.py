"""
Platform-wide exception hierarchy.

Workflows, services and adapters raise these types; blueprints register
one handler per type (``app.blueprints.errors``) and get consistent HTTP
status codes everywhere.

Usage:
    from app.core.exceptions import NotFoundError, InvalidTransitionError

    raise NotFoundError(resource="Stage", resource_id="s1")
    raise InvalidTransitionError("Stage", "s1", current="VALIDATED", event="validate")
"""


class WorkflowError(Exception):
    """Base class for every error a workflow reports to its caller."""


class NotFoundError(WorkflowError):
    """Raised when a requested entity does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Stage", "Task").
        resource_id: The id that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ForbiddenError(WorkflowError):
    """Raised when the permission engine denies an action.

    Args:
        user_id: The actor that was checked.
        resource: Resource name of the (resource, action) key.
        action: Action name of the (resource, action) key.
        reason: The engine's explanation, if any.
    """

    def __init__(
        self,
        user_id: str | None,
        resource: str,
        action: str,
        reason: str | None = None,
    ) -> None:
        self.user_id = user_id
        self.resource = resource
        self.action = action
        self.reason = reason
        msg = f"User {user_id} may not {action} {resource}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InvalidTransitionError(WorkflowError):
    """Raised when the current state of an entity disallows the event.

    Covers re-validation of an already VALIDATED or CLOSED stage.
    """

    def __init__(
        self,
        resource: str,
        resource_id: str | None,
        *,
        current: str,
        event: str,
        reason: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.current_status = current
        self.event = event
        msg = f"Cannot '{event}' {resource} {resource_id} (status={current})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ConflictError(WorkflowError):
    """Raised when a conditional write lost a race with a concurrent writer.

    Callers treat it like ``InvalidTransitionError``: nothing was changed.
    """

    def __init__(self, resource: str, resource_id: str | None, expected: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.expected = expected
        msg = f"{resource} {resource_id} was modified concurrently"
        if expected is not None:
            msg += f" (expected status={expected})"
        super().__init__(msg)


class RepositoryError(WorkflowError):
    """Raised by a repository adapter when a write could not be persisted."""


class PartialFailureError(WorkflowError):
    """Raised when a stage was validated but its generated tasks were not stored.

    The stage transition is already committed. ``pending_tasks`` holds the
    specifications that still need to be created, so a caller can retry
    task creation without re-validating.
    """

    def __init__(self, stage, pending_tasks, cause: Exception | None = None) -> None:
        self.stage = stage
        self.pending_tasks = list(pending_tasks)
        self.cause = cause
        super().__init__(
            f"Stage {stage.id} validated but {len(self.pending_tasks)} generated "
            f"task(s) were not persisted: {cause}"
        )


class ValidationError(WorkflowError):
    """Raised when well-formed input violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)
