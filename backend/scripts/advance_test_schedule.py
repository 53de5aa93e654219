"""
Cron job: advance scheduled tests.

Runs every minute. Starts published tests whose start time has been reached
and ends ongoing tests whose time limit has elapsed.

Exit codes:
    0 - Success
    1 - Database error
    2 - Unexpected error
    3 - Configuration/import error
"""
import asyncio
import json
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("advance_test_schedule_cron")


def main() -> int:
    # Defer imports so config/import failures produce exit code 3
    try:
        from app.core.datetime_utils import utc_now
        from app.core.lifecycle.errors import StorageError
        from app.core.lifecycle.test_service import advance_scheduled_tests
        from app.models.base import AsyncSessionLocal, async_engine
    except Exception as exc:
        logger.error("Failed to import required modules: %s", exc)
        return 3

    async def run() -> dict:
        try:
            async with AsyncSessionLocal() as db:
                return await advance_scheduled_tests(db, utc_now())
        finally:
            await async_engine.dispose()

    now = utc_now()
    try:
        advanced = asyncio.run(run())
    except StorageError as exc:
        logger.error("Schedule advance failed: %s", exc.message)
        return 1
    except Exception as exc:
        logger.error("Unexpected error during schedule advance: %s", exc)
        return 2

    logger.info("Advanced %d test(s)", len(advanced))

    # Emit heartbeat JSON for log monitoring
    heartbeat = {
        "type": "HEARTBEAT",
        "service": "advance_test_schedule_cron",
        "advanced": advanced,
        "evaluated_at": now.isoformat(),
    }
    print(json.dumps(heartbeat), flush=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
