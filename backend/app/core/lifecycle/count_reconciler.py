"""
Count reconciler.

Every question mutation that changes how many questions a test has runs here,
in one transaction that also rewrites the parent test's ``question_count``.

The count write is a versioned ORM update (``Test.version_id``), so the flush
is issued as ``UPDATE tests SET question_count = ?, version_id = ? WHERE id = ?
AND version_id = <snapshot>``. If another writer committed first the update
matches no row, SQLAlchemy raises StaleDataError, and the whole unit of work
is rolled back and re-run against a fresh snapshot. Two concurrent creates
therefore never lose an increment.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
)

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.db_error_handling import storage_errors
from app.core.error_responses import ErrorMessages
from app.models import Question

from .errors import QuestionNotFound, StorageError, TestNotFound, ValidationError
from .stores import QuestionStore, TestStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Editors assign option ids with this prefix before the first save.
TEMP_OPTION_PREFIX = "temp-"


@dataclass
class BulkCreateResult:
    """Outcome of bulk_create_questions.

    Attributes:
        success_count: Number of questions inserted.
        errors: One ``{"index": i, "reason": str}`` per rejected draft, where
            ``i`` is the draft's position in the input.
        questions: The inserted questions, in input order.
    """

    success_count: int
    errors: List[Dict[str, Any]] = field(default_factory=list)
    questions: List[Question] = field(default_factory=list)


def _normalize_options(
    raw: Any, field_errors: Dict[str, str]
) -> List[Dict[str, str]]:
    if not isinstance(raw, (list, tuple)) or len(raw) == 0:
        field_errors["options"] = ErrorMessages.OPTIONS_REQUIRED
        return []

    options: List[Dict[str, str]] = []
    for item in raw:
        if isinstance(item, str):
            option_id, text = None, item
        elif isinstance(item, Mapping):
            option_id, text = item.get("id"), item.get("text")
        else:
            field_errors["options"] = ErrorMessages.INVALID_QUESTION_DATA
            return []

        if not isinstance(text, str):
            field_errors["options"] = ErrorMessages.INVALID_QUESTION_DATA
            return []
        if not option_id or str(option_id).startswith(TEMP_OPTION_PREFIX):
            option_id = str(uuid.uuid4())
        options.append({"id": str(option_id), "text": text})
    return options


def normalize_question(draft: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate a question draft and return the column values to persist.

    Checks that the text is non-empty, that there is at least one option and
    that ``correct_option_index`` addresses one of the final options. Missing
    or temporary option ids are replaced with UUIDs.

    Raises:
        ValidationError: With one entry per offending field.
    """
    field_errors: Dict[str, str] = {}

    text = draft.get("text")
    if not isinstance(text, str) or not text.strip():
        field_errors["text"] = ErrorMessages.QUESTION_TEXT_REQUIRED

    options = _normalize_options(draft.get("options"), field_errors)

    correct = draft.get("correct_option_index", 0)
    if correct is None:
        correct = 0
    if isinstance(correct, bool) or not isinstance(correct, int):
        field_errors["correct_option_index"] = ErrorMessages.INVALID_QUESTION_DATA
    elif options and not 0 <= correct < len(options):
        field_errors["correct_option_index"] = (
            ErrorMessages.correct_index_out_of_range(correct, len(options))
        )

    if field_errors:
        raise ValidationError(ErrorMessages.INVALID_QUESTION_DATA, field_errors)

    return {"text": text, "options": options, "correct_option_index": correct}


def describe_validation_error(error: ValidationError) -> str:
    """Collapse field errors into the single reason string used by batches."""
    if error.field_errors:
        return " ".join(error.field_errors.values())
    return error.message


class CountReconciler:
    """Transactional question writes that keep ``question_count`` exact.

    Args:
        db: Session the unit of work runs on. Each public method commits it.
        max_attempts: Attempts before a version conflict becomes a
            StorageError. Defaults to COUNT_RECONCILER_MAX_ATTEMPTS.
    """

    def __init__(self, db: AsyncSession, *, max_attempts: Optional[int] = None):
        self.db = db
        self.tests = TestStore(db)
        self.questions = QuestionStore(db)
        self.max_attempts = max_attempts or settings.COUNT_RECONCILER_MAX_ATTEMPTS

    async def _run(
        self,
        operation_name: str,
        test_id: str,
        unit: Callable[[], Awaitable[T]],
    ) -> T:
        """Run ``unit`` and commit, re-running it on version conflicts."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with storage_errors(
                    self.db, operation_name, propagate_conflicts=True
                ):
                    result = await unit()
                    await self.db.commit()
                return result
            except StaleDataError:
                logger.warning(
                    f"Version conflict on test {test_id} during {operation_name} "
                    f"(attempt {attempt}/{self.max_attempts})",
                    extra={"test_id": test_id, "attempt": attempt},
                )

        logger.error(
            f"Giving up on {operation_name} for test {test_id} after "
            f"{self.max_attempts} conflicting attempts",
            extra={"test_id": test_id, "attempt": self.max_attempts},
        )
        raise StorageError(ErrorMessages.CONCURRENT_UPDATE)

    async def create_question(self, test_id: str, draft: Mapping[str, Any]) -> Question:
        """Insert one question and increment the parent's count.

        Raises:
            ValidationError: If the draft is malformed (nothing is written).
            TestNotFound: If the test does not exist (nothing is written).
        """
        fields = normalize_question(draft)

        async def unit() -> Question:
            test = await self.tests.get(test_id, for_update=True)
            if test is None:
                raise TestNotFound(test_id)
            question = await self.questions.create(test_id, fields)
            await self.tests.adjust_question_count(test, +1)
            return question

        question = await self._run("create question", test_id, unit)
        logger.info(
            f"Created question {question.id} on test {test_id}",
            extra={"test_id": test_id, "question_id": question.id},
        )
        return question

    async def update_question(
        self, test_id: str, question_id: str, patch: Mapping[str, Any]
    ) -> Question:
        """Merge ``patch`` into the question and validate the result.

        Only ``text``, ``options`` and ``correct_option_index`` are accepted;
        the count is not touched.

        Raises:
            QuestionNotFound: If the question is absent or belongs to another test.
            ValidationError: If the merged question is invalid.
        """

        async def unit() -> Question:
            question = await self.questions.get(question_id)
            if question is None or question.test_id != test_id:
                raise QuestionNotFound(question_id)

            merged = {
                "text": patch.get("text", question.text),
                "options": patch.get("options", question.options),
                "correct_option_index": patch.get(
                    "correct_option_index", question.correct_option_index
                ),
            }
            fields = normalize_question(merged)
            return await self.questions.update(question, fields)

        return await self._run("update question", test_id, unit)

    async def delete_question(self, test_id: str, question_id: str) -> bool:
        """Delete a question and decrement the count, floored at zero.

        Idempotent: an absent question (or absent test) is a no-op.

        Returns:
            True if a question was deleted.
        """

        async def unit() -> bool:
            question = await self.questions.get(question_id)
            if question is None or question.test_id != test_id:
                return False
            await self.questions.delete(question)
            test = await self.tests.get(test_id, for_update=True)
            if test is not None:
                await self.tests.adjust_question_count(test, -1)
            return True

        deleted = await self._run("delete question", test_id, unit)
        if deleted:
            logger.info(
                f"Deleted question {question_id} from test {test_id}",
                extra={"test_id": test_id, "question_id": question_id},
            )
        return deleted

    async def bulk_create_questions(
        self, test_id: str, drafts: Sequence[Mapping[str, Any]]
    ) -> BulkCreateResult:
        """Insert every valid draft and add the number inserted to the count.

        Invalid drafts are skipped and reported; they never abort the batch.

        Raises:
            TestNotFound: If the test does not exist (nothing is written).
        """
        valid: List[Dict[str, Any]] = []
        errors: List[Dict[str, Any]] = []
        for index, draft in enumerate(drafts):
            try:
                valid.append(normalize_question(draft))
            except ValidationError as e:
                errors.append({"index": index, "reason": describe_validation_error(e)})

        async def unit() -> List[Question]:
            test = await self.tests.get(test_id, for_update=True)
            if test is None:
                raise TestNotFound(test_id)
            if not valid:
                return []
            questions = await self.questions.create_many(test_id, valid)
            await self.tests.adjust_question_count(test, len(questions))
            return questions

        questions = await self._run("import questions", test_id, unit)
        logger.info(
            f"Bulk created {len(questions)} question(s) on test {test_id}, "
            f"{len(errors)} rejected",
            extra={
                "test_id": test_id,
                "success_count": len(questions),
                "error_count": len(errors),
            },
        )
        return BulkCreateResult(
            success_count=len(questions), errors=errors, questions=questions
        )

    async def recount(self, test_id: str) -> int:
        """Recompute ``question_count`` from the child rows.

        Repair path for counts that drifted before the reconciler existed.

        Raises:
            TestNotFound: If the test does not exist.
        """

        async def unit() -> int:
            test = await self.tests.get(test_id, for_update=True)
            if test is None:
                raise TestNotFound(test_id)
            actual = await self.questions.count_for_test(test_id)
            if test.question_count != actual:
                logger.warning(
                    f"Question count drift on test {test_id}: "
                    f"cached {test.question_count}, actual {actual}",
                    extra={"test_id": test_id},
                )
                test.question_count = actual
                await self.db.flush()
            return actual

        return await self._run("recount questions", test_id, unit)
