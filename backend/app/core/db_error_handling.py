"""
Database error handling utilities.

This module centralizes the common pattern around a unit of work:
1. Rolling back the database session on error
2. Logging the error with context
3. Raising a StorageError the API maps to 503

Domain errors (LifecycleError subclasses) raised inside the block still roll
the session back but propagate unchanged, so a guard failure in the middle of
a transaction reaches the caller as itself. StaleDataError (a concurrent
writer bumped the test row version first) becomes a StorageError with the
concurrent-update message, unless the caller retries conflicts itself and
passes propagate_conflicts=True.

Usage:
    from app.core.db_error_handling import storage_errors

    async with storage_errors(db, "publish test"):
        test.status = TestStatus.PUBLISHED
        await db.commit()
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.error_responses import ErrorMessages
from app.core.lifecycle.errors import LifecycleError, StorageError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def storage_errors(
    db: AsyncSession,
    operation_name: str,
    *,
    log_level: int = logging.ERROR,
    propagate_conflicts: bool = False,
) -> AsyncGenerator[None, None]:
    """Async context manager for handling database errors consistently.

    Args:
        db: The session to roll back on error.
        operation_name: Human-readable name of the operation for error
            messages and logging (e.g., "create question", "delete test").
        log_level: Logging level for storage failures. Defaults to ERROR.
        propagate_conflicts: Re-raise StaleDataError unchanged so the caller
            can retry the unit of work.

    Raises:
        StorageError: On any SQLAlchemy error, with the session rolled back.
    """
    try:
        yield
    except LifecycleError:
        await db.rollback()
        raise
    except StaleDataError as e:
        await db.rollback()
        if propagate_conflicts:
            raise
        logger.warning(f"Version conflict during {operation_name}: {e}")
        raise StorageError(ErrorMessages.CONCURRENT_UPDATE) from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.log(
            log_level,
            f"Database error during {operation_name}: {e}",
            exc_info=True,
        )
        raise StorageError(
            ErrorMessages.database_operation_failed(operation_name)
        ) from e
