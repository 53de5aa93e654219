"""
Tests for the test state machine and permission guard.
"""
from datetime import datetime, timedelta, timezone

import pytest

from app.core.error_responses import ErrorMessages
from app.core.lifecycle.errors import (
    EditNotAllowed,
    Forbidden,
    InvalidTransition,
    NotDraft,
)
from app.core.lifecycle.state_machine import (
    Actor,
    Role,
    TestAction,
    advance_schedule,
    apply_transition,
    authorize,
    can_manage,
    check_transition,
    ensure_editable,
    rejection_reason,
)
from app.models import Test, TestStatus

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def build_test(**overrides) -> Test:
    values = {
        "id": "t1",
        "name": "Quiz",
        "group_id": "g1",
        "time_limit": 30,
        "date_time": NOW + timedelta(hours=1),
        "test_maker": "teacher-1",
        "status": TestStatus.DRAFT,
        "question_count": 1,
    }
    values.update(overrides)
    return Test(**values)


OWNER = Actor(actor_id="teacher-1", role=Role.TEACHER)
STRANGER = Actor(actor_id="teacher-2", role=Role.TEACHER)
ADMIN = Actor(actor_id="admin-1", role=Role.ADMIN)


class TestPermissionGuard:
    """Tests for can_manage and authorize."""

    def test_owner_and_admin_can_manage(self):
        """Test that the owner and any admin pass the guard."""
        test = build_test()

        assert can_manage(OWNER, test)
        assert can_manage(ADMIN, test)

    def test_other_teacher_cannot_manage(self):
        """Test that a non-owner non-admin is rejected with Forbidden."""
        test = build_test()

        assert not can_manage(STRANGER, test)
        with pytest.raises(Forbidden) as exc_info:
            authorize(STRANGER, test, TestAction.PUBLISH)
        assert exc_info.value.message == ErrorMessages.TEST_ACCESS_DENIED

    def test_revert_is_admin_only_by_default(self):
        """Test that owners cannot revert to draft unless the policy allows it."""
        test = build_test(status=TestStatus.PUBLISHED)

        with pytest.raises(Forbidden) as exc_info:
            authorize(OWNER, test, TestAction.REVERT_TO_DRAFT, owner_can_revert=False)
        assert exc_info.value.message == ErrorMessages.REVERT_DENIED

        authorize(ADMIN, test, TestAction.REVERT_TO_DRAFT, owner_can_revert=False)

    def test_owner_revert_allowed_when_policy_enabled(self):
        """Test that the owner may revert when OWNER_CAN_REVERT_TO_DRAFT is on."""
        test = build_test(status=TestStatus.COMPLETED)

        authorize(OWNER, test, TestAction.REVERT_TO_DRAFT, owner_can_revert=True)

        with pytest.raises(Forbidden):
            authorize(
                STRANGER, test, TestAction.REVERT_TO_DRAFT, owner_can_revert=True
            )


class TestTransitions:
    """Tests for the transition table."""

    def test_publish_draft_with_questions(self):
        """Test draft -> published when the test has questions."""
        test = build_test()

        assert apply_transition(test, TestAction.PUBLISH, NOW) == TestStatus.PUBLISHED
        assert test.status == TestStatus.PUBLISHED

    def test_publish_requires_questions(self):
        """Test that a draft with no questions cannot be published."""
        test = build_test(question_count=0)

        with pytest.raises(InvalidTransition) as exc_info:
            apply_transition(test, TestAction.PUBLISH, NOW)

        assert exc_info.value.reason == ErrorMessages.PUBLISH_REQUIRES_QUESTIONS
        assert test.status == TestStatus.DRAFT

    def test_publish_requires_draft(self):
        """Test that publishing an already published test is rejected."""
        test = build_test(status=TestStatus.PUBLISHED)

        with pytest.raises(InvalidTransition) as exc_info:
            check_transition(test, TestAction.PUBLISH, NOW)

        error = exc_info.value
        assert error.reason == ErrorMessages.PUBLISH_REQUIRES_DRAFT
        assert error.from_status == "published"
        assert error.to_status == "published"
        assert error.status_code == 409

    @pytest.mark.parametrize(
        "status", [TestStatus.PUBLISHED, TestStatus.ONGOING]
    )
    def test_end_records_completion_time(self, status):
        """Test that ending a published or ongoing test sets completed_at."""
        test = build_test(status=status)

        apply_transition(test, TestAction.END, NOW)

        assert test.status == TestStatus.COMPLETED
        assert test.completed_at == NOW

    def test_end_rejected_for_draft(self):
        """Test that a draft cannot be ended."""
        test = build_test()

        assert rejection_reason(test, TestAction.END, NOW) == (
            ErrorMessages.END_REQUIRES_ACTIVE
        )

    def test_revert_clears_completion_time(self):
        """Test that reverting a completed test returns it to a clean draft."""
        test = build_test(status=TestStatus.COMPLETED, completed_at=NOW)

        apply_transition(test, TestAction.REVERT_TO_DRAFT, NOW)

        assert test.status == TestStatus.DRAFT
        assert test.completed_at is None

    def test_revert_rejected_for_draft(self):
        """Test that a draft cannot be reverted again."""
        with pytest.raises(InvalidTransition) as exc_info:
            check_transition(build_test(), TestAction.REVERT_TO_DRAFT, NOW)
        assert exc_info.value.reason == ErrorMessages.ALREADY_DRAFT

    @pytest.mark.parametrize(
        "status", [TestStatus.PUBLISHED, TestStatus.ONGOING, TestStatus.COMPLETED]
    )
    def test_delete_requires_draft(self, status):
        """Test that deleting a non-draft raises NotDraft."""
        test = build_test(status=status)

        with pytest.raises(NotDraft) as exc_info:
            check_transition(test, TestAction.DELETE, NOW)

        assert exc_info.value.message == "Only draft tests can be deleted."
        assert exc_info.value.from_status == status.value

    def test_delete_draft_allowed(self):
        """Test that deleting a draft passes the guard and changes nothing."""
        test = build_test()

        assert apply_transition(test, TestAction.DELETE, NOW) is None
        assert test.status == TestStatus.DRAFT

    def test_start_waits_for_scheduled_time(self):
        """Test that a published test cannot start before date_time."""
        test = build_test(status=TestStatus.PUBLISHED)

        assert rejection_reason(test, TestAction.START, NOW) == (
            ErrorMessages.START_TIME_NOT_REACHED
        )
        assert rejection_reason(test, TestAction.START, test.date_time) is None

    def test_naive_scheduled_time_treated_as_utc(self):
        """Test that naive datetimes read back from SQLite compare as UTC."""
        test = build_test(
            status=TestStatus.PUBLISHED, date_time=datetime(2026, 3, 1, 8, 0)
        )

        assert rejection_reason(test, TestAction.START, NOW) is None


class TestEnsureEditable:
    """Tests for the draft-only detail edit guard."""

    def test_draft_is_editable(self):
        ensure_editable(build_test())

    def test_published_is_not_editable(self):
        """Test that EditNotAllowed carries the current status."""
        with pytest.raises(EditNotAllowed) as exc_info:
            ensure_editable(build_test(status=TestStatus.PUBLISHED))

        assert exc_info.value.extra() == {"status": "published"}


class TestAdvanceSchedule:
    """Tests for time-driven transitions."""

    def test_nothing_due_before_start(self):
        test = build_test(status=TestStatus.PUBLISHED)

        assert advance_schedule(test, NOW) == []
        assert test.status == TestStatus.PUBLISHED

    def test_published_test_starts_at_scheduled_time(self):
        """Test that a published test becomes ongoing once date_time passes."""
        test = build_test(status=TestStatus.PUBLISHED)

        fired = advance_schedule(test, test.date_time + timedelta(minutes=5))

        assert fired == [TestAction.START]
        assert test.status == TestStatus.ONGOING

    def test_ongoing_test_ends_after_time_limit(self):
        """Test that an ongoing test completes when its window closes."""
        test = build_test(status=TestStatus.ONGOING)
        end = test.date_time + timedelta(minutes=30)

        assert advance_schedule(test, end - timedelta(seconds=1)) == []
        assert advance_schedule(test, end) == [TestAction.END]
        assert test.status == TestStatus.COMPLETED
        assert test.completed_at == end

    def test_missed_window_starts_and_ends(self):
        """Test that a published test whose window already closed is completed."""
        test = build_test(status=TestStatus.PUBLISHED)

        fired = advance_schedule(test, test.date_time + timedelta(hours=2))

        assert fired == [TestAction.START, TestAction.END]
        assert test.status == TestStatus.COMPLETED

    def test_drafts_are_never_advanced(self):
        """Test that drafts ignore the clock."""
        test = build_test()

        assert advance_schedule(test, test.date_time + timedelta(days=1)) == []
        assert test.status == TestStatus.DRAFT
