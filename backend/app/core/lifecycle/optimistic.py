"""
Optimistic command helper.

Applies a change locally before the remote call completes and restores the
pre-command snapshot if the remote call fails. The result carries the
snapshot so callers can inspect or re-apply it.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

S = TypeVar("S")


@dataclass
class CommandResult(Generic[S]):
    ok: bool
    snapshot: S
    error: Optional[Exception] = None


async def run_optimistic(
    snapshot: Callable[[], S],
    apply: Callable[[], None],
    rollback: Callable[[S], None],
    remote: Callable[[], Awaitable[object]],
) -> CommandResult[S]:
    """Run a command optimistically.

    Args:
        snapshot: Captures the local state the command is about to change.
        apply: Applies the change locally.
        rollback: Restores local state from the captured snapshot.
        remote: Performs the remote side of the command.

    Returns:
        CommandResult with ``ok`` False and the remote error when the remote
        call failed (local state has been rolled back by then).
    """
    before = snapshot()
    apply()
    try:
        await remote()
    except Exception as e:
        logger.warning(f"Optimistic command failed, rolling back: {e}")
        rollback(before)
        return CommandResult(ok=False, snapshot=before, error=e)
    return CommandResult(ok=True, snapshot=before)
