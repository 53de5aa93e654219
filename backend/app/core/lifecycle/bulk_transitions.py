"""
Bulk transition orchestrator.

Applies one action (publish, revert_to_draft or delete) to a list of tests.
Every test is handled in its own session and transaction, so one test's
failure never aborts the batch; the outcome of each item is reported in the
result instead. There is no atomicity across tests.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.datetime_utils import utc_now
from app.core.error_responses import ErrorMessages

from .errors import Forbidden, InvalidTransition, LifecycleError, ValidationError
from .state_machine import Actor, TestAction, authorize, check_transition
from .stores import TestStore
from .test_service import perform_transition, remove_test

logger = logging.getLogger(__name__)

BULK_ACTIONS = (TestAction.PUBLISH, TestAction.REVERT_TO_DRAFT, TestAction.DELETE)


@dataclass
class BulkTransitionResult:
    """Aggregate outcome of a bulk transition.

    Attributes:
        success_count: Tests the action was applied to.
        error_count: Tests that were skipped or failed.
        errors: One ``{"id": test_id, "reason": str}`` per failed item, in
            input order.
    """

    success_count: int = 0
    error_count: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    def record_failure(self, test_id: str, reason: str) -> None:
        self.error_count += 1
        self.errors.append({"id": test_id, "reason": reason})

    def summary(self) -> str:
        text = f"{self.success_count} succeeded, {self.error_count} failed"
        if self.errors:
            reasons = "; ".join(f"{e['id']}: {e['reason']}" for e in self.errors)
            text = f"{text}: {reasons}"
        return text


def parse_bulk_action(action: Union[str, TestAction, None]) -> TestAction:
    """Resolve the requested action, rejecting anything outside BULK_ACTIONS.

    Raises:
        ValidationError: If the action is missing or not a bulk action.
    """
    if action is None or action == "":
        raise ValidationError(
            ErrorMessages.unknown_action(""), {"action": "Action is required."}
        )
    try:
        parsed = TestAction(action)
    except ValueError:
        parsed = None
    if parsed not in BULK_ACTIONS:
        message = ErrorMessages.unknown_action(str(getattr(action, "value", action)))
        raise ValidationError(message, {"action": message})
    return parsed


async def _transition_one(
    db: AsyncSession,
    test_id: str,
    action: TestAction,
    actor: Actor,
    now: datetime,
) -> Optional[str]:
    """Run one item's unit of work. Returns the failure reason, or None."""
    test = await TestStore(db).get(test_id)
    if test is None:
        return ErrorMessages.BULK_TEST_NOT_FOUND

    try:
        authorize(actor, test, action)
    except Forbidden:
        return ErrorMessages.FORBIDDEN

    try:
        check_transition(test, action, now)
    except InvalidTransition as e:
        return e.reason

    if action == TestAction.DELETE:
        await remove_test(db, test)
    else:
        await perform_transition(db, test, action, now)
    await db.commit()
    return None


async def bulk_transition_tests(
    session_factory: async_sessionmaker[AsyncSession],
    test_ids: Sequence[str],
    action: Union[str, TestAction, None],
    actor: Actor,
    now: Optional[datetime] = None,
) -> BulkTransitionResult:
    """Apply ``action`` to each test in ``test_ids``, isolating failures.

    Items are processed sequentially in input order, each in a fresh session
    from ``session_factory``. Duplicate ids are processed every time they
    appear (the second occurrence usually fails its state guard).

    Raises:
        ValidationError: Only when the request itself is malformed (missing
            or unknown action, empty id list).
    """
    parsed_action = parse_bulk_action(action)
    if not test_ids:
        raise ValidationError(
            ErrorMessages.EMPTY_TEST_ID_LIST,
            {"ids": ErrorMessages.EMPTY_TEST_ID_LIST},
        )

    now = now or utc_now()
    result = BulkTransitionResult()

    for test_id in test_ids:
        async with session_factory() as db:
            try:
                reason = await _transition_one(db, test_id, parsed_action, actor, now)
            except LifecycleError as e:
                await db.rollback()
                reason = e.message
            except Exception as e:
                # A storage failure on one test is reported, not raised.
                await db.rollback()
                logger.error(
                    f"Bulk {parsed_action.value} failed for test {test_id}: {e}",
                    exc_info=True,
                    extra={"test_id": test_id, "action": parsed_action.value},
                )
                reason = str(e) or e.__class__.__name__

        if reason is None:
            result.success_count += 1
        else:
            result.record_failure(test_id, reason)

    logger.info(
        f"Bulk {parsed_action.value} by {actor.actor_id}: {result.summary()}",
        extra={
            "actor_id": actor.actor_id,
            "action": parsed_action.value,
            "success_count": result.success_count,
            "error_count": result.error_count,
        },
    )
    return result
