"""
Test result endpoints: list a test's sessions and reset selected ones.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_actor
from app.core.lifecycle import Actor
from app.core.lifecycle import test_service
from app.models import get_db
from app.schemas.results import (
    ResetSessionsRequest,
    ResetSessionsResponse,
    TestResultsResponse,
    TestSessionResponse,
)
from app.schemas.tests import TestResponse

router = APIRouter()


@router.get("/{test_id}", response_model=TestResultsResponse)
async def get_results(
    test_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Return the test and every session recorded for it (owner or admin)."""
    results = await test_service.get_test_results(db, test_id, actor)
    return TestResultsResponse(
        test=TestResponse.from_test(results.test),
        sessions=[TestSessionResponse.from_session(s) for s in results.sessions],
    )


@router.post("/{test_id}/reset", response_model=ResetSessionsResponse)
async def reset_results(
    test_id: str,
    request: ResetSessionsRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Delete the selected sessions so those students can take the test again."""
    deleted = await test_service.reset_sessions(
        db, test_id, request.session_ids, actor
    )
    return ResetSessionsResponse(
        message=f"Reset {deleted} session(s).", deleted_count=deleted
    )
