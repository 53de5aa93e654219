"""
Test management endpoints.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.auth import get_current_actor
from app.core.lifecycle import Actor
from app.core.lifecycle.bulk_transitions import bulk_transition_tests
from app.core.lifecycle import test_service
from app.models import get_db, get_session_factory
from app.schemas.tests import (
    BulkErrorItem,
    BulkTestActionRequest,
    BulkTestActionResponse,
    TestCreate,
    TestResponse,
    TestUpdate,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=TestResponse, status_code=status.HTTP_201_CREATED)
async def create_test(
    test_data: TestCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Create a draft test owned by the current actor.

    Raises:
        Forbidden: If the actor is not a teacher or admin
    """
    test = await test_service.create_test(db, test_data.model_dump(), actor)
    return TestResponse.from_test(test)


@router.get("", response_model=List[TestResponse])
async def list_tests(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    List tests visible to the current actor, newest scheduled start first.

    Admins see every test; other actors see their own tests and tests
    assigned to their groups.
    """
    items = await test_service.list_tests(db, actor)
    return [TestResponse.from_test(item.test, item.group_name) for item in items]


@router.post("/bulk", response_model=BulkTestActionResponse)
async def bulk_test_action(
    request: BulkTestActionRequest,
    actor: Actor = Depends(get_current_actor),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """
    Apply publish, revert_to_draft or delete to many tests.

    Each test is processed in its own transaction. Tests that cannot be
    transitioned are reported in ``errors``; the request still succeeds.
    """
    result = await bulk_transition_tests(
        session_factory, request.ids, request.action, actor
    )
    return BulkTestActionResponse(
        message=result.summary(),
        success_count=result.success_count,
        error_count=result.error_count,
        errors=[BulkErrorItem(**error) for error in result.errors],
    )


@router.get("/{test_id}", response_model=TestResponse)
async def get_test(
    test_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    test = await test_service.get_test(db, test_id, actor)
    return TestResponse.from_test(test)


@router.put("/{test_id}", response_model=TestResponse)
async def update_test(
    test_id: str,
    patch: TestUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Edit the details of a draft test.

    Raises:
        EditNotAllowed: 409 if the test is no longer a draft
    """
    test = await test_service.update_test_details(
        db, test_id, patch.model_dump(exclude_unset=True), actor
    )
    return TestResponse.from_test(test)


@router.delete("/{test_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_test(
    test_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Delete a draft test.

    Raises:
        NotDraft: 409 if the test has been published
    """
    await test_service.delete_test(db, test_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{test_id}/publish", response_model=TestResponse)
async def publish_test(
    test_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    test = await test_service.publish_test(db, test_id, actor)
    return TestResponse.from_test(test)


@router.post("/{test_id}/end", response_model=TestResponse)
async def end_test(
    test_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    test = await test_service.end_test(db, test_id, actor)
    return TestResponse.from_test(test)


@router.post("/{test_id}/revert", response_model=TestResponse)
async def revert_test(
    test_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Revert a test to draft, discarding every session recorded for it.
    """
    test = await test_service.revert_test_to_draft(db, test_id, actor)
    return TestResponse.from_test(test)
