"""
Pytest configuration and shared fixtures for testing.
"""
import asyncio
import heapq
import itertools
import os
from datetime import timedelta
from pathlib import Path

# Configure the environment before anything imports app.core.config or
# app.models.base; both read it at import time.
_TEST_DB = Path(__file__).parent / "test.db"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-testdesk-tests")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TEST_DB}")
os.environ.setdefault("ENV", "test")

from contextlib import asynccontextmanager  # noqa: E402
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, List  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.datetime_utils import utc_now  # noqa: E402
from app.core.lifecycle.count_reconciler import CountReconciler  # noqa: E402
from app.core.lifecycle.state_machine import Actor, Role  # noqa: E402
from app.core.lifecycle.stores import QuestionStore  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.main import app  # noqa: E402
from app.models import (  # noqa: E402
    Base,
    Group,
    Test,
    TestSession,
    TestStatus,
    get_db,
    get_session_factory,
)


@asynccontextmanager
async def _test_lifespan(app):
    """No-op lifespan for tests.

    Skips error tracking initialization and engine disposal.
    """
    yield


# Neutralize the production lifespan on the singleton app.
app.router.lifespan_context = _test_lifespan


def create_test_application():
    """Create the production app with the lifespan disabled."""
    from app.main import create_application

    test_app = create_application()
    test_app.router.lifespan_context = _test_lifespan
    return test_app


ASYNC_SQLALCHEMY_DATABASE_URL = f"sqlite+aiosqlite:///{_TEST_DB}"

async_test_engine = create_async_engine(
    ASYNC_SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
AsyncTestingSessionLocal = async_sessionmaker(
    async_test_engine, class_=AsyncSession, expire_on_commit=False
)

TEACHER_ID = "teacher-1"
OTHER_TEACHER_ID = "teacher-2"
ADMIN_ID = "admin-1"
STUDENT_ID = "student-1"

SAMPLE_QUESTION: Dict[str, Any] = {
    "text": "What is 2 + 2?",
    "options": [{"text": "3"}, {"text": "4"}, {"text": "5"}],
    "correct_option_index": 1,
}


@pytest.fixture(scope="function")
async def async_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh async database session for each test.
    """
    async with async_test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncTestingSessionLocal() as session:
        yield session

    async with async_test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await async_test_engine.dispose()


@pytest.fixture
def session_factory(async_db_session) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database (tables created)."""
    return AsyncTestingSessionLocal


@pytest.fixture(scope="function")
async def async_client(
    async_db_session: AsyncSession,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async test client with async database dependency overrides.

    Each request gets its own session, as in production.
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with AsyncTestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: AsyncTestingSessionLocal
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_session_factory, None)


# --- Actors and tokens ---


@pytest.fixture
def teacher() -> Actor:
    return Actor(actor_id=TEACHER_ID, role=Role.TEACHER)


@pytest.fixture
def other_teacher() -> Actor:
    return Actor(actor_id=OTHER_TEACHER_ID, role=Role.TEACHER)


@pytest.fixture
def admin() -> Actor:
    return Actor(actor_id=ADMIN_ID, role=Role.ADMIN)


@pytest.fixture
def student() -> Actor:
    return Actor(actor_id=STUDENT_ID, role=Role.STUDENT)


def _headers_for(actor: Actor) -> Dict[str, str]:
    token = create_access_token({"sub": actor.actor_id, "role": actor.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers_for() -> Callable[[Actor], Dict[str, str]]:
    """Build Authorization headers for any actor."""
    return _headers_for


@pytest.fixture
def teacher_headers(teacher) -> Dict[str, str]:
    return _headers_for(teacher)


@pytest.fixture
def other_teacher_headers(other_teacher) -> Dict[str, str]:
    return _headers_for(other_teacher)


@pytest.fixture
def admin_headers(admin) -> Dict[str, str]:
    return _headers_for(admin)


@pytest.fixture
def student_headers(student) -> Dict[str, str]:
    return _headers_for(student)


# --- Data factories ---


@pytest.fixture
def make_test(async_db_session) -> Callable[..., Awaitable[Test]]:
    """Insert a test row directly, bypassing the service layer."""

    async def _make_test(**overrides: Any) -> Test:
        values: Dict[str, Any] = {
            "name": "Quiz",
            "group_id": "g1",
            "time_limit": 30,
            "date_time": utc_now() + timedelta(days=1),
            "test_maker": TEACHER_ID,
            "status": TestStatus.DRAFT,
            "question_count": 0,
        }
        values.update(overrides)
        test = Test(**values)
        async_db_session.add(test)
        await async_db_session.commit()
        await async_db_session.refresh(test)
        return test

    return _make_test


@pytest.fixture
def fetch_test(session_factory) -> Callable[[str], Awaitable[Any]]:
    """Read a test back through a new session (None if deleted)."""

    async def _fetch_test(test_id: str):
        async with session_factory() as db:
            return await db.get(Test, test_id)

    return _fetch_test


@pytest.fixture
def count_questions(session_factory) -> Callable[[str], Awaitable[int]]:
    """Count a test's question rows through a new session."""

    async def _count(test_id: str) -> int:
        async with session_factory() as db:
            return await QuestionStore(db).count_for_test(test_id)

    return _count


@pytest.fixture
def add_questions(session_factory) -> Callable[..., Awaitable[List[str]]]:
    """Create ``count`` questions on a test through the count reconciler."""

    async def _add_questions(test_id: str, count: int = 1) -> List[str]:
        ids = []
        async with session_factory() as db:
            reconciler = CountReconciler(db)
            for n in range(count):
                question = await reconciler.create_question(
                    test_id, {**SAMPLE_QUESTION, "text": f"Question {n + 1}"}
                )
                ids.append(question.id)
        return ids

    return _add_questions


@pytest.fixture
def make_session(async_db_session) -> Callable[..., Awaitable[TestSession]]:
    async def _make_session(test_id: str, student_id: str = STUDENT_ID, **overrides):
        session = TestSession(test_id=test_id, student_id=student_id, **overrides)
        async_db_session.add(session)
        await async_db_session.commit()
        return session

    return _make_session


@pytest.fixture
def make_group(async_db_session) -> Callable[..., Awaitable[Group]]:
    async def _make_group(group_id: str, name: str, member_ids: List[str]) -> Group:
        group = Group(id=group_id, name=name, member_ids=member_ids)
        async_db_session.add(group)
        await async_db_session.commit()
        return group

    return _make_group


# --- Autosave scheduling ---


class ManualTimer:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual clock for the autosave pipeline.

    Timers fire only when the test advances the clock. Spawned coroutines run
    as real asyncio tasks; ``advance`` and ``settle`` yield to the loop so they
    make progress.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._timers: List[Any] = []
        self._sequence = itertools.count()
        self.tasks: List["asyncio.Task[Any]"] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer()
        heapq.heappush(
            self._timers, (self.now + delay, next(self._sequence), timer, callback)
        )
        return timer

    def spawn(self, awaitable: Awaitable[Any]) -> "asyncio.Task[Any]":
        task = asyncio.ensure_future(awaitable)
        self.tasks.append(task)
        return task

    def pending_timers(self) -> List[float]:
        return sorted(due for due, _, timer, _ in self._timers if not timer.cancelled)

    async def settle(self) -> None:
        for _ in range(20):
            await asyncio.sleep(0)

    async def advance_to(self, when: float) -> None:
        """Fire every timer due at or before ``when``, in order."""
        await self.settle()
        while self._timers and self._timers[0][0] <= when:
            due, _, timer, callback = heapq.heappop(self._timers)
            self.now = due
            if not timer.cancelled:
                callback()
            await self.settle()
        self.now = when
        await self.settle()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


class FakeQuestionServer:
    """Remote side of the autosave pipeline with manually completed calls."""

    def __init__(self) -> None:
        self.saves: List[Dict[str, Any]] = []
        self.deletes: List[Dict[str, Any]] = []

    async def save(self, question_id: str, payload: Dict[str, Any]) -> Any:
        future = asyncio.get_running_loop().create_future()
        self.saves.append(
            {"question_id": question_id, "payload": payload, "future": future}
        )
        return await future

    async def delete(self, question_id: str) -> Any:
        future = asyncio.get_running_loop().create_future()
        self.deletes.append({"question_id": question_id, "future": future})
        return await future

    def complete_save(self, index: int, result: Any = None) -> None:
        call = self.saves[index]
        if result is None:
            result = {"id": call["question_id"], **call["payload"]}
        call["future"].set_result(result)

    def fail_save(self, index: int, error: Exception) -> None:
        self.saves[index]["future"].set_exception(error)


@pytest.fixture
def question_server() -> FakeQuestionServer:
    return FakeQuestionServer()
