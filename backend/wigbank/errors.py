"""Typed failures raised by the workflow services."""

from __future__ import annotations

# purpose: stable failure taxonomy shared by services and the HTTP error handler
# status: stable


class WorkflowError(Exception):
    """Base class for every rule violation reported to a caller."""

    status_code = 400
    code = "workflow_error"
    default_message = "Workflow error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"detail": self.message, "code": self.code}


class NotFound(WorkflowError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found"


class PermissionDenied(WorkflowError):
    status_code = 403
    code = "permission_denied"
    default_message = "Not authorized"


class InvalidArgument(WorkflowError):
    status_code = 400
    code = "invalid_argument"
    default_message = "Invalid argument"


class InvalidTransition(WorkflowError):
    status_code = 409
    code = "invalid_transition"
    default_message = "Transition not allowed"


class Conflict(WorkflowError):
    status_code = 409
    code = "conflict"
    default_message = "Resource already exists"


class FailedPrecondition(WorkflowError):
    """A donation guard failed; ``reason`` names which one."""

    status_code = 412
    code = "failed_precondition"
    default_message = "Precondition failed"

    WIG_NOT_OWNED = "wig_not_owned"
    WIG_UNAVAILABLE = "wig_unavailable"
    REQUEST_NOT_APPROVED = "request_not_approved"

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        payload = super().to_dict()
        payload["reason"] = self.reason
        return payload
