"""
Database models for the test lifecycle manager.
"""
from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum
import uuid

from .base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TestStatus(str, enum.Enum):
    """Test lifecycle status enumeration."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ONGOING = "ongoing"
    COMPLETED = "completed"


class SessionStatus(str, enum.Enum):
    """Status of a student's attempt at a test."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SUBMITTED = "submitted"
    EXPIRED = "expired"


class Test(Base):
    """A scheduled test owned by its test maker."""

    __tablename__ = "tests"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    group_id = Column(String(64), nullable=False, index=True)
    time_limit = Column(Integer, nullable=False)  # minutes
    # Cached mirror of the number of child questions. Only the count
    # reconciler writes it.
    question_count = Column(Integer, default=0, nullable=False)
    date_time = Column(DateTime(timezone=True), nullable=False)
    test_maker = Column(String(64), nullable=False, index=True)
    status = Column(
        Enum(TestStatus), default=TestStatus.DRAFT, nullable=False, index=True
    )
    anti_cheat_config = Column(JSON, nullable=True)  # opaque, stored as given
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic concurrency: every UPDATE is issued as
    # "... WHERE id = ? AND version_id = <snapshot>", so a concurrent writer
    # surfaces as StaleDataError instead of a lost update.
    version_id = Column(Integer, nullable=False)

    questions = relationship(
        "Question",
        back_populates="test",
        order_by="Question.created_at",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    sessions = relationship(
        "TestSession",
        back_populates="test",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        CheckConstraint("time_limit >= 1", name="ck_tests_time_limit_positive"),
        CheckConstraint(
            "question_count >= 0", name="ck_tests_question_count_non_negative"
        ),
        Index("ix_tests_status_date_time", "status", "date_time"),
    )


class Question(Base):
    """A multiple choice question belonging to exactly one test."""

    __tablename__ = "questions"

    id = Column(String(36), primary_key=True, default=_new_id)
    test_id = Column(
        String(36),
        ForeignKey("tests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    text = Column(Text, nullable=False)
    options = Column(JSON, nullable=False)  # [{"id": ..., "text": ...}, ...]
    correct_option_index = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    test = relationship("Test", back_populates="questions")


class TestSession(Base):
    """A student's attempt at a test.

    Written by the exam-taking client; this service only reads these rows
    and deletes them when a test is reset or reverted to draft.
    """

    __tablename__ = "test_sessions"

    id = Column(String(36), primary_key=True, default=_new_id)
    test_id = Column(
        String(36),
        ForeignKey("tests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id = Column(String(64), nullable=False, index=True)
    status = Column(
        Enum(SessionStatus), default=SessionStatus.NOT_STARTED, nullable=False
    )
    final_score = Column(Float, nullable=True)
    # {question_id: {"selected_answer_index": int, "is_correct": bool}}
    answers = Column(JSON, nullable=True)
    start_time = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)

    test = relationship("Test", back_populates="sessions")


class Group(Base):
    """A group of users that tests are assigned to (read-only here)."""

    __tablename__ = "groups"

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    member_ids = Column(JSON, nullable=True)  # list of user ids
