"""
Test & question lifecycle core.

This package holds the test state machine, the count reconciler that keeps
``Test.question_count`` exact, the bulk transition orchestrator, the bulk
import validator and the question editor's autosave pipeline.

The database-bound services (count_reconciler, test_service,
bulk_transitions) are imported from their modules directly:

    from app.core.lifecycle.count_reconciler import CountReconciler
    from app.core.lifecycle.bulk_transitions import bulk_transition_tests
"""

from .autosave import (
    AsyncioScheduler,
    AutosavePipeline,
    QuestionBuffer,
    SaveStatus,
    Scheduler,
)
from .bulk_import import (
    BulkImportResult,
    ImportValidation,
    SkippedRow,
    bulk_import_questions,
    validate_import_rows,
)
from .errors import (
    EditNotAllowed,
    Forbidden,
    InvalidTransition,
    LifecycleError,
    NotDraft,
    NotFound,
    QuestionNotFound,
    StorageError,
    TestNotFound,
    Unauthorized,
    ValidationError,
)
from .optimistic import CommandResult, run_optimistic
from .state_machine import (
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

__all__ = [
    # Autosave
    "AsyncioScheduler",
    "AutosavePipeline",
    "QuestionBuffer",
    "SaveStatus",
    "Scheduler",
    # Bulk import
    "BulkImportResult",
    "ImportValidation",
    "SkippedRow",
    "bulk_import_questions",
    "validate_import_rows",
    # Errors
    "EditNotAllowed",
    "Forbidden",
    "InvalidTransition",
    "LifecycleError",
    "NotDraft",
    "NotFound",
    "QuestionNotFound",
    "StorageError",
    "TestNotFound",
    "Unauthorized",
    "ValidationError",
    # Optimistic commands
    "CommandResult",
    "run_optimistic",
    # State machine
    "Actor",
    "Role",
    "TestAction",
    "advance_schedule",
    "apply_transition",
    "authorize",
    "can_manage",
    "check_transition",
    "ensure_editable",
    "rejection_reason",
]
