"""
Pydantic schemas for request/response validation.
"""
from .tests import (
    TestCreate,
    TestUpdate,
    TestResponse,
    BulkTestActionRequest,
    BulkTestActionResponse,
    BulkErrorItem,
)
from .questions import (
    OptionSchema,
    QuestionCreate,
    QuestionUpdate,
    QuestionResponse,
    ImportRowSchema,
    BulkQuestionImportRequest,
    BulkQuestionImportResponse,
    SkippedRowSchema,
)
from .results import (
    TestSessionResponse,
    TestResultsResponse,
    ResetSessionsRequest,
    ResetSessionsResponse,
)

__all__ = [
    "TestCreate",
    "TestUpdate",
    "TestResponse",
    "BulkTestActionRequest",
    "BulkTestActionResponse",
    "BulkErrorItem",
    "OptionSchema",
    "QuestionCreate",
    "QuestionUpdate",
    "QuestionResponse",
    "ImportRowSchema",
    "BulkQuestionImportRequest",
    "BulkQuestionImportResponse",
    "SkippedRowSchema",
    "TestSessionResponse",
    "TestResultsResponse",
    "ResetSessionsRequest",
    "ResetSessionsResponse",
]
