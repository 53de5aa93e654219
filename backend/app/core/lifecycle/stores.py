"""
Store adapters over the SQLAlchemy models.

Each adapter wraps one AsyncSession and exposes the narrow CRUD surface the
lifecycle core needs. Adapters never commit: transaction boundaries belong to
the caller (the count reconciler, the bulk orchestrator, or the request
handler), so several adapter calls compose into one unit of work.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import utc_now
from app.models import Group, Question, Test, TestSession, TestStatus


class TestStore:
    """CRUD over test records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, test_id: str, *, for_update: bool = False) -> Optional[Test]:
        stmt = select(Test).where(Test.id == test_id)
        if for_update:
            # Refresh a possibly cached instance so the version snapshot is
            # current at the start of a retry.
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, data: Dict[str, Any]) -> Test:
        test = Test(**data)
        self.db.add(test)
        await self.db.flush()
        return test

    async def update(self, test: Test, patch: Dict[str, Any]) -> Test:
        for field, value in patch.items():
            setattr(test, field, value)
        await self.db.flush()
        return test

    async def delete(self, test: Test) -> None:
        await self.db.delete(test)
        await self.db.flush()

    async def query(
        self,
        *,
        owner_id: Optional[str] = None,
        group_ids: Optional[Sequence[str]] = None,
        statuses: Optional[Sequence[TestStatus]] = None,
    ) -> List[Test]:
        """Return tests matching the filter, newest scheduled start first.

        ``owner_id`` and ``group_ids`` are OR-ed together (visibility filter);
        ``statuses`` is AND-ed with the rest.
        """
        stmt = select(Test)

        visibility = []
        if owner_id is not None:
            visibility.append(Test.test_maker == owner_id)
        if group_ids:
            visibility.append(Test.group_id.in_(list(group_ids)))
        if owner_id is not None or group_ids is not None:
            if not visibility:
                return []
            stmt = stmt.where(or_(*visibility))

        if statuses:
            stmt = stmt.where(Test.status.in_(list(statuses)))

        stmt = stmt.order_by(Test.date_time.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def adjust_question_count(self, test: Test, delta: int) -> int:
        """Apply ``delta`` to the cached count, flooring at zero.

        The write goes through the ORM so it is versioned: the flush issues
        ``UPDATE ... WHERE version_id = <snapshot>``.
        """
        test.question_count = max(0, (test.question_count or 0) + delta)
        await self.db.flush()
        return test.question_count


class QuestionStore:
    """CRUD over a test's question sub-collection."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, question_id: str) -> Optional[Question]:
        result = await self.db.execute(
            select(Question).where(Question.id == question_id)
        )
        return result.scalar_one_or_none()

    async def list_for_test(self, test_id: str) -> List[Question]:
        result = await self.db.execute(
            select(Question)
            .where(Question.test_id == test_id)
            .order_by(Question.created_at, Question.id)
        )
        return list(result.scalars().all())

    async def create(self, test_id: str, data: Dict[str, Any]) -> Question:
        question = Question(test_id=test_id, **data)
        self.db.add(question)
        await self.db.flush()
        return question

    async def create_many(
        self, test_id: str, drafts: Iterable[Dict[str, Any]]
    ) -> List[Question]:
        questions = [Question(test_id=test_id, **data) for data in drafts]
        self.db.add_all(questions)
        await self.db.flush()
        return questions

    async def update(self, question: Question, patch: Dict[str, Any]) -> Question:
        for field, value in patch.items():
            setattr(question, field, value)
        question.updated_at = utc_now()
        await self.db.flush()
        return question

    async def delete(self, question: Question) -> None:
        await self.db.delete(question)
        await self.db.flush()

    async def delete_for_test(self, test_id: str) -> int:
        result = await self.db.execute(
            delete(Question).where(Question.test_id == test_id)
        )
        return result.rowcount or 0

    async def count_for_test(self, test_id: str) -> int:
        result = await self.db.execute(
            select(func.count(Question.id)).where(Question.test_id == test_id)
        )
        return int(result.scalar_one())


class SessionStore:
    """Read access to test sessions, plus the deletes used by revert/reset."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_for_test(self, test_id: str) -> List[TestSession]:
        result = await self.db.execute(
            select(TestSession)
            .where(TestSession.test_id == test_id)
            .order_by(TestSession.start_time.desc())
        )
        return list(result.scalars().all())

    async def delete_for_test(self, test_id: str) -> int:
        result = await self.db.execute(
            delete(TestSession).where(TestSession.test_id == test_id)
        )
        return result.rowcount or 0

    async def delete_ids(self, test_id: str, session_ids: Sequence[str]) -> int:
        """Delete the listed sessions, ignoring ids that belong to other tests."""
        result = await self.db.execute(
            delete(TestSession).where(
                TestSession.test_id == test_id,
                TestSession.id.in_(list(session_ids)),
            )
        )
        return result.rowcount or 0


class GroupStore:
    """Group directory lookups (read only)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def names_for(self, group_ids: Iterable[str]) -> Dict[str, str]:
        ids = list(set(group_ids))
        if not ids:
            return {}
        result = await self.db.execute(
            select(Group.id, Group.name).where(Group.id.in_(ids))
        )
        return {row.id: row.name for row in result.all()}

    async def ids_for_member(self, actor_id: str) -> List[str]:
        # member_ids is a JSON list; filter in Python so the query stays
        # portable between PostgreSQL and SQLite.
        result = await self.db.execute(select(Group.id, Group.member_ids))
        return [
            row.id for row in result.all() if actor_id in (row.member_ids or [])
        ]
