"""
Standardized error response messages and body builders.

This module keeps every user-facing message of the lifecycle API in one
place. Domain errors (app.core.lifecycle.errors) take their default messages
from here, and the state machine uses the transition reasons verbatim, so the
same string shows up in single-entity error responses and in the per-item
``errors`` list of bulk operations.

Error Message Format Guidelines:
- Use sentence case (capitalize first letter only)
- End with a period for complete sentences
- Use "Please try again later." for transient server errors

Usage:
    from app.core.error_responses import ErrorMessages, build_error_body

    raise InvalidTransition(
        from_status="published",
        to_status="published",
        reason=ErrorMessages.PUBLISH_REQUIRES_DRAFT,
    )

    return JSONResponse(
        status_code=409,
        content=build_error_body(exc.message, exc.kind, **exc.extra()),
    )
"""

from typing import Any, Dict


class ErrorMessages:
    """Centralized error message constants and templates.

    Naming Convention:
    - Constants: SCREAMING_SNAKE_CASE for static messages
    - Methods: snake_case for templates that accept parameters
    """

    # ==========================================================================
    # Authentication Errors (401)
    # ==========================================================================
    NOT_AUTHENTICATED = "Not authenticated."
    INVALID_TOKEN = "Invalid authentication token."
    INVALID_TOKEN_TYPE = "Invalid token type."
    INVALID_TOKEN_PAYLOAD = "Invalid token payload."

    # ==========================================================================
    # Authorization Errors (403)
    # ==========================================================================
    FORBIDDEN = "Forbidden"
    TEST_ACCESS_DENIED = "Not authorized to manage this test."
    TEST_CREATION_DENIED = "Only teachers and admins can create tests."
    REVERT_DENIED = "Only admins can revert a test to draft."

    # ==========================================================================
    # Not Found Errors (404)
    # ==========================================================================
    TEST_NOT_FOUND = "Test not found."
    QUESTION_NOT_FOUND = "Question not found."

    # Bulk operations report these per item, without a trailing period.
    BULK_TEST_NOT_FOUND = "Test not found"

    # ==========================================================================
    # State Machine Rejections (409)
    # ==========================================================================
    PUBLISH_REQUIRES_DRAFT = "Only draft tests can be published."
    PUBLISH_REQUIRES_QUESTIONS = (
        "Test must have at least one question to be published."
    )
    START_REQUIRES_PUBLISHED = "Only published tests can be started."
    START_TIME_NOT_REACHED = "The scheduled start time has not been reached."
    END_REQUIRES_ACTIVE = "Only published or ongoing tests can be ended."
    ALREADY_DRAFT = "Test is already a draft."
    DELETE_REQUIRES_DRAFT = "Only draft tests can be deleted."
    EDIT_REQUIRES_DRAFT = "Test details can only be edited while the test is a draft."

    # ==========================================================================
    # Bad Request Errors (400)
    # ==========================================================================
    INVALID_TEST_DATA = "Invalid test data."
    INVALID_QUESTION_DATA = "Invalid question data."
    QUESTION_TEXT_REQUIRED = "Question text cannot be empty."
    OPTIONS_REQUIRED = "A question needs at least one option."
    OPTION_TEXT_REQUIRED = "Option text cannot be empty."
    EMPTY_TEST_ID_LIST = "At least one test id is required."
    EMPTY_SESSION_ID_LIST = "At least one session id is required."
    EMPTY_IMPORT = "No rows to import."
    QUESTIONS_REMAIN = (
        "Delete the questions of this test before deleting the test."
    )

    # ==========================================================================
    # Server Errors (500/503)
    # ==========================================================================
    INTERNAL_ERROR = "An unexpected error occurred. Please try again later."
    CONCURRENT_UPDATE = (
        "The test was modified by another request. Please try again later."
    )

    # ==========================================================================
    # Template Methods for Dynamic Messages
    # ==========================================================================
    @staticmethod
    def unknown_action(action: str) -> str:
        """Message for a bulk action outside publish/revert_to_draft/delete."""
        return f"Unknown action '{action}'."

    @staticmethod
    def correct_index_out_of_range(index: int, option_count: int) -> str:
        """Message when the correct option index does not address an option."""
        return (
            f"Correct option index {index} is out of range "
            f"for {option_count} option(s)."
        )

    @staticmethod
    def too_many_rows(count: int, limit: int) -> str:
        return f"Cannot import {count} rows at once (limit is {limit})."

    @staticmethod
    def database_operation_failed(operation: str) -> str:
        """Generic message for database operation failures."""
        return f"Failed to {operation}. Please try again later."


# ==============================================================================
# Response Body Builders
# ==============================================================================


def build_error_body(detail: str, error: str, **extra: Any) -> Dict[str, Any]:
    """Build the JSON body shared by every error response.

    Args:
        detail: User-facing error message
        error: Machine-readable error kind (e.g. "invalid_transition")
        **extra: Additional fields (field errors, from/to status, error id)

    Returns:
        Dict suitable for a JSONResponse
    """
    body: Dict[str, Any] = {"detail": detail, "error": error}
    body.update(extra)
    return body
