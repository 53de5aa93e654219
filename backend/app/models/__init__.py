"""
Models package for the TestDesk backend.
"""
from .base import Base, AsyncSessionLocal, async_engine, get_db, get_session_factory
from .models import (
    Test,
    Question,
    TestSession,
    Group,
    TestStatus,
    SessionStatus,
)

__all__ = [
    "Base",
    "AsyncSessionLocal",
    "async_engine",
    "get_db",
    "get_session_factory",
    "Test",
    "Question",
    "TestSession",
    "Group",
    "TestStatus",
    "SessionStatus",
]
