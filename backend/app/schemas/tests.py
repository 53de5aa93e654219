"""
Pydantic schemas for test endpoints.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from app.core.validators import TextValidator, validate_id_list


class TestCreate(BaseModel):
    """Schema for creating a test.

    ``question_count`` and ``status`` are not accepted: new tests always start
    as drafts with no questions.
    """

    name: str = Field(..., min_length=1, max_length=255, description="Test name")
    group_id: str = Field(..., min_length=1, description="Group the test is assigned to")
    time_limit: int = Field(..., ge=1, description="Time limit in minutes")
    date_time: datetime = Field(..., description="Scheduled start (timezone-aware)")
    anti_cheat_config: Optional[Dict[str, Any]] = Field(
        None, description="Opaque anti-cheat configuration, stored unchanged"
    )

    @field_validator("name", "group_id")
    @classmethod
    def validate_text(cls, v: str, info: Any) -> str:
        return TextValidator.validate_non_empty_text(v, info.field_name)


class TestUpdate(BaseModel):
    """Schema for editing a draft test's details. Unset fields are unchanged."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    group_id: Optional[str] = Field(None, min_length=1)
    time_limit: Optional[int] = Field(None, ge=1)
    date_time: Optional[datetime] = None
    anti_cheat_config: Optional[Dict[str, Any]] = None

    @field_validator("name", "group_id")
    @classmethod
    def validate_text(cls, v: Optional[str], info: Any) -> Optional[str]:
        return TextValidator.validate_optional_text(v, info.field_name)


class TestResponse(BaseModel):
    """Schema for a test record."""

    id: str = Field(..., description="Test ID")
    name: str
    group_id: str
    group_name: Optional[str] = Field(None, description="Resolved group display name")
    time_limit: int = Field(..., description="Time limit in minutes")
    question_count: int = Field(..., description="Number of questions in the test")
    date_time: datetime = Field(..., description="Scheduled start")
    test_maker: str = Field(..., description="Owner actor ID")
    status: str = Field(
        ..., description="Test status (draft, published, ongoing, completed)"
    )
    anti_cheat_config: Optional[Dict[str, Any]] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        """Pydantic configuration."""

        from_attributes = True

    @classmethod
    def from_test(cls, test: Any, group_name: Optional[str] = None) -> "TestResponse":
        """Build a response from a Test row, rendering the status as its value."""
        response = cls.model_validate(test)
        response.status = getattr(test.status, "value", test.status)
        response.group_name = group_name
        return response


class BulkTestActionRequest(BaseModel):
    """Schema for applying one action to many tests."""

    ids: List[str] = Field(..., min_length=1, description="Test IDs, processed in order")
    action: Literal["publish", "revert_to_draft", "delete"] = Field(
        ..., description="Action to apply to every test"
    )

    @field_validator("ids")
    @classmethod
    def validate_ids(cls, v: List[str]) -> List[str]:
        return validate_id_list(v, "ids")


class BulkErrorItem(BaseModel):
    id: str = Field(..., description="Test ID")
    reason: str = Field(..., description="Why the action was not applied")


class BulkTestActionResponse(BaseModel):
    """Per-item outcome of a bulk action. Partial success is a normal result."""

    message: str = Field(..., description="Human-readable summary")
    success_count: int
    error_count: int
    errors: List[BulkErrorItem] = Field(default_factory=list)
