"""
Pydantic schemas for test result endpoints.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from app.core.validators import validate_id_list
from app.schemas.tests import TestResponse


class TestSessionResponse(BaseModel):
    """Schema for a student's test session."""

    id: str = Field(..., description="Test session ID")
    test_id: str
    student_id: str
    status: str = Field(
        ...,
        description="Session status (not_started, in_progress, completed, "
        "submitted, expired)",
    )
    final_score: Optional[float] = None
    answers: Optional[Dict[str, Any]] = Field(
        None, description="Question ID -> selected answer index and correctness"
    )
    start_time: datetime
    end_time: Optional[datetime] = None

    class Config:
        """Pydantic configuration."""

        from_attributes = True

    @classmethod
    def from_session(cls, session: Any) -> "TestSessionResponse":
        response = cls.model_validate(session)
        response.status = getattr(session.status, "value", session.status)
        return response


class TestResultsResponse(BaseModel):
    test: TestResponse
    sessions: List[TestSessionResponse]


class ResetSessionsRequest(BaseModel):
    session_ids: List[str] = Field(..., min_length=1)

    @field_validator("session_ids")
    @classmethod
    def validate_ids(cls, v: List[str]) -> List[str]:
        return validate_id_list(v, "session_ids")


class ResetSessionsResponse(BaseModel):
    message: str
    deleted_count: int
