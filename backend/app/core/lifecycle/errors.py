"""
Domain errors raised by the test lifecycle core.

Every error carries the HTTP status it maps to and a user-facing message, so
the API layer can render it with a single exception handler (see
app.main.lifecycle_error_handler). Batch operations never raise these for
individual items; they collect the message into their result instead.
"""

from typing import Any, Dict, Optional

from fastapi import status

from app.core.error_responses import ErrorMessages


class LifecycleError(Exception):
    """Base class for errors surfaced by the lifecycle core.

    Attributes:
        message: User-facing message, safe to return to clients.
        status_code: HTTP status the error maps to.
        kind: Short machine-readable error name used in API responses.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    kind: str = "lifecycle_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def extra(self) -> Dict[str, Any]:
        """Additional fields merged into the error response body."""
        return {}


class Unauthorized(LifecycleError):
    """No session, or the session token could not be validated."""

    status_code = status.HTTP_401_UNAUTHORIZED
    kind = "unauthorized"


class Forbidden(LifecycleError):
    """The actor is authenticated but may not act on this resource."""

    status_code = status.HTTP_403_FORBIDDEN
    kind = "forbidden"


class NotFound(LifecycleError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "not_found"


class TestNotFound(NotFound):
    kind = "test_not_found"

    def __init__(self, test_id: str, message: Optional[str] = None):
        self.test_id = test_id
        super().__init__(message or ErrorMessages.TEST_NOT_FOUND)


class QuestionNotFound(NotFound):
    kind = "question_not_found"

    def __init__(self, question_id: str, message: Optional[str] = None):
        self.question_id = question_id
        super().__init__(message or ErrorMessages.QUESTION_NOT_FOUND)


class ValidationError(LifecycleError):
    """Malformed input.

    Args:
        message: Summary message.
        field_errors: Mapping of field name to the problem with that field.
    """

    kind = "validation_error"

    def __init__(self, message: str, field_errors: Optional[Dict[str, str]] = None):
        self.field_errors = dict(field_errors or {})
        super().__init__(message)

    def extra(self) -> Dict[str, Any]:
        return {"field_errors": self.field_errors}


class InvalidTransition(LifecycleError):
    """A state machine guard rejected the requested status change.

    The message is the human-readable reason (for example
    "Only draft tests can be published."), which the bulk orchestrator
    reports verbatim per item.
    """

    status_code = status.HTTP_409_CONFLICT
    kind = "invalid_transition"

    def __init__(self, from_status: str, to_status: Optional[str], reason: str):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        super().__init__(reason)

    def extra(self) -> Dict[str, Any]:
        return {"from_status": self.from_status, "to_status": self.to_status}


class NotDraft(InvalidTransition):
    """Raised when deleting a test that has left the draft state."""

    kind = "not_draft"

    def __init__(
        self, from_status: str, reason: str = ErrorMessages.DELETE_REQUIRES_DRAFT
    ):
        super().__init__(from_status, None, reason)


class EditNotAllowed(LifecycleError):
    status_code = status.HTTP_409_CONFLICT
    kind = "edit_not_allowed"

    def __init__(self, current_status: str, message: Optional[str] = None):
        self.current_status = current_status
        super().__init__(
            message or ErrorMessages.EDIT_REQUIRES_DRAFT
        )

    def extra(self) -> Dict[str, Any]:
        return {"status": self.current_status}


class StorageError(LifecycleError):
    """Transient persistence failure; callers may retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    kind = "storage_error"
