"""
Question management endpoints.

Every write goes through the count reconciler so the parent test's
question_count stays equal to its number of questions.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_actor
from app.core.lifecycle import Actor, authorize, bulk_import_questions
from app.core.lifecycle.count_reconciler import CountReconciler
from app.core.lifecycle.stores import QuestionStore, TestStore
from app.core.lifecycle.test_service import load_managed_test
from app.models import get_db
from app.schemas.questions import (
    BulkQuestionImportRequest,
    BulkQuestionImportResponse,
    QuestionCreate,
    QuestionResponse,
    QuestionUpdate,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/{test_id}/questions", response_model=List[QuestionResponse])
async def list_questions(
    test_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """List a test's questions in creation order."""
    await load_managed_test(db, test_id, actor)
    questions = await QuestionStore(db).list_for_test(test_id)
    return [QuestionResponse.model_validate(q) for q in questions]


@router.post(
    "/{test_id}/questions",
    response_model=QuestionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_question(
    test_id: str,
    question_data: QuestionCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Add a question to a test and increment its question count.

    Raises:
        TestNotFound: 404 if the test does not exist
        ValidationError: 400 if the correct option index is out of range
    """
    await load_managed_test(db, test_id, actor)
    question = await CountReconciler(db).create_question(
        test_id, question_data.model_dump()
    )
    return QuestionResponse.model_validate(question)


@router.post(
    "/{test_id}/questions/bulk",
    response_model=BulkQuestionImportResponse,
    status_code=status.HTTP_201_CREATED,
)
async def import_questions(
    test_id: str,
    request: BulkQuestionImportRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Import externally parsed rows as questions.

    Invalid rows are skipped and reported with a reason; valid rows are
    inserted together and the count grows by exactly the number inserted.
    """
    await load_managed_test(db, test_id, actor)
    result = await bulk_import_questions(
        CountReconciler(db),
        test_id,
        [row.model_dump() for row in request.rows],
    )
    return BulkQuestionImportResponse.from_result(result)


@router.patch("/{test_id}/questions/{question_id}", response_model=QuestionResponse)
async def update_question(
    test_id: str,
    question_id: str,
    patch: QuestionUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Partially update a question (used by the editor's autosave).

    Raises:
        QuestionNotFound: 404 if the question is not part of the test
        ValidationError: 400 if the merged question is invalid
    """
    await load_managed_test(db, test_id, actor)
    question = await CountReconciler(db).update_question(
        test_id, question_id, patch.model_dump(exclude_unset=True)
    )
    return QuestionResponse.model_validate(question)


@router.delete(
    "/{test_id}/questions/{question_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_question(
    test_id: str,
    question_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Delete a question and decrement the count. Deleting a question (or a
    question of a test) that no longer exists is a no-op.
    """
    test = await TestStore(db).get(test_id)
    if test is not None:
        authorize(actor, test)
    await CountReconciler(db).delete_question(test_id, question_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
