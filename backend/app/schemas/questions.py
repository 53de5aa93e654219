"""
Pydantic schemas for question endpoints.
"""
from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from app.core.validators import TextValidator


class OptionSchema(BaseModel):
    """An answer option. ``id`` may be omitted or temporary on writes."""

    id: Optional[str] = Field(None, description="Option ID (server-assigned)")
    text: str = Field(..., description="Option text")


class QuestionCreate(BaseModel):
    """Schema for creating a question."""

    text: str = Field(..., min_length=1, description="Question text")
    options: List[OptionSchema] = Field(..., min_length=1)
    correct_option_index: int = Field(
        0, ge=0, description="0-based index of the correct option"
    )

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        return TextValidator.validate_non_empty_text(v, "Question text")


class QuestionUpdate(BaseModel):
    """Schema for a partial question update (the autosave payload)."""

    text: Optional[str] = None
    options: Optional[List[OptionSchema]] = Field(None, min_length=1)
    correct_option_index: Optional[int] = Field(None, ge=0)


class QuestionResponse(BaseModel):
    """Schema for a question record."""

    id: str = Field(..., description="Question ID")
    test_id: str = Field(..., description="Parent test ID")
    text: str
    options: List[OptionSchema]
    correct_option_index: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        """Pydantic configuration."""

        from_attributes = True


class ImportRowSchema(BaseModel):
    """One externally parsed row. Malformed rows are skipped, not rejected."""

    text: Optional[str] = Field(None, description="Question text cell")
    options: List[Optional[str]] = Field(
        default_factory=list, description="Option cells in column order"
    )
    correct_option: Optional[Union[int, str]] = Field(
        None, description="Correct option: number (1-based by default) or letter"
    )
    row_number: Optional[int] = Field(
        None, ge=1, description="Source row number used in skip reports"
    )


class BulkQuestionImportRequest(BaseModel):
    rows: List[ImportRowSchema] = Field(..., min_length=1)


class SkippedRowSchema(BaseModel):
    row_number: int
    reason: str

    class Config:
        """Pydantic configuration."""

        from_attributes = True


class BulkQuestionImportResponse(BaseModel):
    """Outcome of a bulk import."""

    message: str
    success_count: int = Field(..., description="Number of questions created")
    skipped: List[SkippedRowSchema] = Field(default_factory=list)
    questions: List[QuestionResponse] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: Any) -> "BulkQuestionImportResponse":
        return cls(
            message=(
                f"Imported {result.success_count} question(s), "
                f"skipped {len(result.skipped)} row(s)."
            ),
            success_count=result.success_count,
            skipped=[SkippedRowSchema.model_validate(row) for row in result.skipped],
            questions=[QuestionResponse.model_validate(q) for q in result.questions],
        )
