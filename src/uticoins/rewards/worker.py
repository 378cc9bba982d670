"""Daily rewards arq worker: issues the code at each rollover and prunes history.

Issuance is idempotent per business date, so the startup check, the cron job
and the admin endpoint can all fire without producing a second code.
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings
from sqlalchemy.ext.asyncio import AsyncSession

from uticoins.config import get_settings
from uticoins.database import close_db, get_session, init_db
from uticoins.rewards.clock import get_rollover_clock
from uticoins.rewards.code_service import cleanup_old_codes, issue_daily_code

logger = logging.getLogger(__name__)

# Cleanup runs well away from the rollover so it never races issuance.
CLEANUP_HOUR_UTC = 6


async def _get_db_session() -> AsyncSession:
    """Get a database session for the worker."""
    async for session in get_session():
        return session
    raise RuntimeError("Failed to get database session")


async def rewards_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB and make sure today's code exists (covers downtime over a rollover)."""
    settings = get_settings()
    await init_db(settings.database_url)
    ctx["settings"] = settings
    try:
        await issue_daily_code_job(ctx)
    except Exception:
        logger.warning("Startup issuance check failed (tables may not exist yet)", exc_info=True)
    logger.info("Rewards worker started")


async def rewards_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    await close_db()
    logger.info("Rewards worker shut down")


async def issue_daily_code_job(ctx: dict) -> str:  # type: ignore[type-arg]
    """Scheduled task: issue the code for the business date that just opened."""
    db = await _get_db_session()
    try:
        code, created = await issue_daily_code(db)
    finally:
        await db.close()
    if created:
        logger.info("Rollover issued code for %s", code.code_date)
    return code.code_date.isoformat()


async def cleanup_job(ctx: dict) -> dict[str, int]:  # type: ignore[type-arg]
    """Scheduled task: prune claims and codes past the retention window."""
    db = await _get_db_session()
    try:
        return await cleanup_old_codes(db)
    finally:
        await db.close()


class RewardsWorkerSettings:
    """arq worker settings for daily code issuance and cleanup."""

    functions = [issue_daily_code_job, cleanup_job]
    cron_jobs = [
        # Rollover is a fixed regional hour; run_at_startup is covered by rewards_startup.
        cron(issue_daily_code_job, hour={get_rollover_clock().utc_rollover_hour()}, minute={0}, second={5}),
        cron(cleanup_job, hour={CLEANUP_HOUR_UTC}, minute={15}),
    ]
    on_startup = rewards_startup
    on_shutdown = rewards_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    max_jobs = 2
    job_timeout = 300
