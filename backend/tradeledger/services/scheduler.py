"""Background scheduler: raises collection-due notifications once a day.

Uses FastAPI's lifespan context to start/stop an asyncio background loop
that fires once per day at the configured hour.

Usage:
    from tradeledger.services.scheduler import lifespan
    app = FastAPI(lifespan=lifespan, ...)

Configuration:
    REMINDER_HOUR=6   (run at 06:00 UTC daily, via .env)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI

from tradeledger.config import settings
from tradeledger.database import Base, async_session, engine

logger = logging.getLogger("tradeledger.scheduler")


async def run_daily_reminders() -> int:
    """Raise due/overdue notifications for pending collections."""
    from tradeledger.services.local_trade import check_due_collections

    logger.info("Starting daily collection reminder run")
    async with async_session() as db:
        try:
            created = await check_due_collections(db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    logger.info("Collection reminder run complete: %d notification(s)", created)
    return created


def seconds_until(target_hour: int, now: datetime | None = None) -> float:
    """Seconds from `now` until the next `target_hour`:00 UTC."""
    now = now or datetime.now(timezone.utc)
    next_run = now.replace(hour=target_hour, minute=0, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


async def _scheduler_loop() -> None:
    while True:
        wait_seconds = seconds_until(settings.reminder_hour)
        logger.info("Next collection reminder run in %.0f seconds", wait_seconds)
        await asyncio.sleep(wait_seconds)

        try:
            await run_daily_reminders()
        except Exception:
            logger.exception("Unhandled error in daily collection reminders")

        # Small buffer to avoid running twice in the same minute
        await asyncio.sleep(60)


async def _ensure_tables() -> None:
    """Create any missing tables so a fresh database is usable at once."""
    import tradeledger.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: start the scheduler on startup, cancel on shutdown."""
    await _ensure_tables()
    task = asyncio.create_task(_scheduler_loop())
    logger.info("Collection reminder scheduler started")
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Collection reminder scheduler stopped")
