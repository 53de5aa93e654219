"""
Test state machine.

States: draft, published, ongoing, completed. Actor-driven transitions
(publish, end, revert_to_draft, delete) are checked against the permission
guard and the transition table; time-driven transitions (start, and end once
the scheduled window closes) are applied by advance_schedule.

The functions here only inspect and mutate the in-memory Test. Persisting the
result, and the revert side effect of discarding sessions, is the caller's
job so that it happens inside the caller's transaction.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional

from app.core.config import settings
from app.core.datetime_utils import ensure_timezone_aware, utc_now, window_end
from app.core.error_responses import ErrorMessages
from app.models import Test, TestStatus

from .errors import EditNotAllowed, Forbidden, InvalidTransition, NotDraft


class Role(str, enum.Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as resolved from the bearer token."""

    actor_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class TestAction(str, enum.Enum):
    """Actions that move a test through its lifecycle."""

    PUBLISH = "publish"
    START = "start"
    END = "end"
    REVERT_TO_DRAFT = "revert_to_draft"
    DELETE = "delete"


@dataclass(frozen=True)
class Transition:
    """One row of the transition table.

    Attributes:
        sources: Statuses the action may be applied from.
        target: Resulting status, or None when the test is removed.
        reason: Rejection reason when the current status is not a source.
    """

    sources: FrozenSet[TestStatus]
    target: Optional[TestStatus]
    reason: str


TRANSITIONS: Dict[TestAction, Transition] = {
    TestAction.PUBLISH: Transition(
        sources=frozenset({TestStatus.DRAFT}),
        target=TestStatus.PUBLISHED,
        reason=ErrorMessages.PUBLISH_REQUIRES_DRAFT,
    ),
    TestAction.START: Transition(
        sources=frozenset({TestStatus.PUBLISHED}),
        target=TestStatus.ONGOING,
        reason=ErrorMessages.START_REQUIRES_PUBLISHED,
    ),
    TestAction.END: Transition(
        sources=frozenset({TestStatus.PUBLISHED, TestStatus.ONGOING}),
        target=TestStatus.COMPLETED,
        reason=ErrorMessages.END_REQUIRES_ACTIVE,
    ),
    TestAction.REVERT_TO_DRAFT: Transition(
        sources=frozenset(
            {TestStatus.PUBLISHED, TestStatus.ONGOING, TestStatus.COMPLETED}
        ),
        target=TestStatus.DRAFT,
        reason=ErrorMessages.ALREADY_DRAFT,
    ),
    TestAction.DELETE: Transition(
        sources=frozenset({TestStatus.DRAFT}),
        target=None,
        reason=ErrorMessages.DELETE_REQUIRES_DRAFT,
    ),
}


def _status_value(status: TestStatus) -> str:
    return status.value if isinstance(status, TestStatus) else str(status)


def can_manage(actor: Actor, test: Test) -> bool:
    """Permission guard: admins manage every test, owners manage their own."""
    return actor.is_admin or actor.actor_id == test.test_maker


def authorize(
    actor: Actor,
    test: Test,
    action: Optional[TestAction] = None,
    *,
    owner_can_revert: Optional[bool] = None,
) -> None:
    """Raise Forbidden unless ``actor`` may apply ``action`` to ``test``.

    Reverting to draft discards every session of the test, so owners may do
    it only when OWNER_CAN_REVERT_TO_DRAFT is enabled.
    """
    if action == TestAction.REVERT_TO_DRAFT and not actor.is_admin:
        if owner_can_revert is None:
            owner_can_revert = settings.OWNER_CAN_REVERT_TO_DRAFT
        if not (owner_can_revert and actor.actor_id == test.test_maker):
            raise Forbidden(ErrorMessages.REVERT_DENIED)
        return

    if not can_manage(actor, test):
        raise Forbidden(ErrorMessages.TEST_ACCESS_DENIED)


def scheduled_end(test: Test) -> datetime:
    return window_end(test.date_time, test.time_limit)


def rejection_reason(
    test: Test, action: TestAction, now: Optional[datetime] = None
) -> Optional[str]:
    """Return why ``action`` cannot be applied to ``test``, or None if it can."""
    transition = TRANSITIONS[action]
    if test.status not in transition.sources:
        return transition.reason

    if action == TestAction.PUBLISH and (test.question_count or 0) <= 0:
        return ErrorMessages.PUBLISH_REQUIRES_QUESTIONS

    if action == TestAction.START:
        now = now or utc_now()
        if ensure_timezone_aware(now) < ensure_timezone_aware(test.date_time):
            return ErrorMessages.START_TIME_NOT_REACHED

    return None


def check_transition(
    test: Test, action: TestAction, now: Optional[datetime] = None
) -> None:
    """Raise InvalidTransition (NotDraft for deletes) if the guard fails."""
    reason = rejection_reason(test, action, now)
    if reason is None:
        return

    from_status = _status_value(test.status)
    if action == TestAction.DELETE:
        raise NotDraft(from_status, reason)

    target = TRANSITIONS[action].target
    raise InvalidTransition(
        from_status=from_status,
        to_status=_status_value(target) if target is not None else None,
        reason=reason,
    )


def apply_transition(
    test: Test, action: TestAction, now: Optional[datetime] = None
) -> Optional[TestStatus]:
    """Validate and apply ``action`` to ``test`` in memory.

    Returns the new status (None for delete, which the caller performs).
    """
    now = now or utc_now()
    check_transition(test, action, now)

    target = TRANSITIONS[action].target
    if target is None:
        return None

    test.status = target
    if target == TestStatus.COMPLETED:
        test.completed_at = now
    elif target == TestStatus.DRAFT:
        test.completed_at = None
    return target


def ensure_editable(test: Test) -> None:
    """Details (name, group, timing, anti-cheat config) are draft-only."""
    if test.status != TestStatus.DRAFT:
        raise EditNotAllowed(_status_value(test.status))


def advance_schedule(test: Test, now: Optional[datetime] = None) -> List[TestAction]:
    """Apply the time-driven transitions that are due at ``now``.

    A published test whose window has already closed is started and ended in
    the same call. Returns the actions that fired, in order.
    """
    now = ensure_timezone_aware(now or utc_now())
    fired: List[TestAction] = []

    if test.status == TestStatus.PUBLISHED and now >= ensure_timezone_aware(
        test.date_time
    ):
        apply_transition(test, TestAction.START, now)
        fired.append(TestAction.START)

    if test.status == TestStatus.ONGOING and now >= scheduled_end(test):
        apply_transition(test, TestAction.END, now)
        fired.append(TestAction.END)

    return fired
