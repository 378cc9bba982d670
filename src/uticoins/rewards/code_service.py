"""Daily code issuance, lookup and history pruning.

Codes are numeric, generated server-side with a cryptographic random source.
Issuance is idempotent per business date: the unique ``code_date`` column
lets concurrent workers race safely.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from uticoins.config import Settings, get_settings
from uticoins.db.models import DailyCodeRow, UserDailyClaim
from uticoins.rewards.clock import RolloverClock, ensure_utc, get_rollover_clock
from uticoins.rewards.lifecycle import CodeState, DailyCode, classify

logger = logging.getLogger(__name__)

CODE_CHARSET = string.digits


def generate_code(length: int = 6) -> str:
    """Generate a cryptographically random numeric code."""
    return "".join(secrets.choice(CODE_CHARSET) for _ in range(length))


def normalize_code(code: str) -> str:
    """Strip whitespace and the separators users type when copying a code."""
    return code.strip().replace(" ", "").replace("-", "")


async def generate_unique_code(db: AsyncSession, length: int = 6) -> str:
    """Generate a code that doesn't already exist in the database."""
    for _ in range(10):
        code = generate_code(length)
        existing = await db.execute(select(DailyCodeRow.id).where(DailyCodeRow.code == code))
        if existing.scalar_one_or_none() is None:
            return code
    raise RuntimeError("Failed to generate unique daily code after 10 attempts")


async def get_code_for_date(db: AsyncSession, code_date: date) -> DailyCode | None:
    result = await db.execute(select(DailyCodeRow).where(DailyCodeRow.code_date == code_date))
    row = result.scalar_one_or_none()
    return DailyCode.from_row(row) if row is not None else None


async def get_code_by_value(db: AsyncSession, code: str) -> DailyCode | None:
    result = await db.execute(select(DailyCodeRow).where(DailyCodeRow.code == normalize_code(code)))
    row = result.scalar_one_or_none()
    return DailyCode.from_row(row) if row is not None else None


async def get_active_code(db: AsyncSession, now: datetime | None = None) -> DailyCode | None:
    """The most recently issued code, unless it is already past its streak-valid window.

    A newer issuance supersedes older codes, so at most one code is active.
    """
    now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
    result = await db.execute(
        select(DailyCodeRow)
        .where(DailyCodeRow.issued_at <= now)
        .order_by(DailyCodeRow.issued_at.desc())
        .limit(1)
    )
    row = result.scalar_one_or_none()
    if row is None:
        return None
    code = DailyCode.from_row(row)
    if classify(code, now, has_claim_record=False) is CodeState.EXPIRED:
        return None
    return code


async def issue_daily_code(
    db: AsyncSession,
    now: datetime | None = None,
    *,
    settings: Settings | None = None,
    clock: RolloverClock | None = None,
) -> tuple[DailyCode, bool]:
    """Issue the code for the business date containing ``now``.

    Returns (code, created). An existing code for the date is returned as-is.
    """
    settings = settings or get_settings()
    clock = clock or get_rollover_clock()
    now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
    code_date = clock.business_date(now)

    existing = await get_code_for_date(db, code_date)
    if existing is not None:
        logger.info("Daily code for %s already exists: %s", code_date, existing.code)
        return existing, False

    value = await generate_unique_code(db, settings.code_length)
    code = DailyCode.for_business_date(
        code=value,
        code_date=code_date,
        issued_at=now,
        clock=clock,
        streak_grace_hours=settings.streak_grace_hours,
    )
    row = DailyCodeRow(
        code=code.code,
        code_date=code.code_date,
        issued_at=code.issued_at,
        claim_deadline=code.claim_deadline,
        streak_valid_until=code.streak_valid_until,
    )
    db.add(row)
    try:
        await db.commit()
    except IntegrityError:
        # Another worker issued the same date between our check and insert.
        await db.rollback()
        winner = await get_code_for_date(db, code_date)
        if winner is None:
            raise
        return winner, False

    logger.info(
        "Issued daily code %s for %s (claim until %s, streak-valid until %s)",
        code.code, code_date, code.claim_deadline.isoformat(), code.streak_valid_until.isoformat(),
    )
    return DailyCode.from_row(row), True


async def cleanup_old_codes(
    db: AsyncSession,
    now: datetime | None = None,
    *,
    settings: Settings | None = None,
    clock: RolloverClock | None = None,
) -> dict[str, int]:
    """Prune claims and codes older than the retention window.

    Retention never drops below one reward cycle; claim rows store the streak
    they produced, so streaks survive pruning.
    """
    settings = settings or get_settings()
    clock = clock or get_rollover_clock()
    now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
    retention_days = max(settings.claim_retention_days, settings.reward_cycle_days + 1)
    cutoff = clock.business_date(now) - timedelta(days=retention_days)

    claims = await db.execute(delete(UserDailyClaim).where(UserDailyClaim.code_date < cutoff))
    codes = await db.execute(delete(DailyCodeRow).where(DailyCodeRow.code_date < cutoff))
    await db.commit()

    removed = {"claims": claims.rowcount or 0, "codes": codes.rowcount or 0}
    logger.info("Pruned history before %s: %d claims, %d codes", cutoff, removed["claims"], removed["codes"])
    return removed
