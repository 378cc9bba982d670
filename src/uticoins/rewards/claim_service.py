"""Claim protocol and current-state projection.

``claim_code`` is the only mutating entry point. The claim row insert is the
atomic check-and-set on (user_id, code_date); the coin transaction and
balance update share its transaction, so either all three land or none do.
A repeated claim for the same user and date returns the stored result.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from uticoins.config import Settings, get_settings
from uticoins.db.models import CoinBalance, CoinTransaction, DailyCodeRow, UserDailyClaim
from uticoins.rewards.clock import RolloverClock, ensure_utc, get_rollover_clock
from uticoins.rewards.code_service import get_active_code, get_code_by_value, normalize_code
from uticoins.rewards.curve import RewardCurve
from uticoins.rewards.errors import ClaimError, ClaimErrorKind
from uticoins.rewards.lifecycle import CodeState, DailyCode, classify
from uticoins.rewards.streak import ClaimRecord, compute_streak, last_claim_at, longest_streak

logger = logging.getLogger(__name__)

CLAIM_REASON = "daily_code_claim"
COINS_CHANNEL = "pubsub:coins"


@dataclass(frozen=True)
class ClaimResult:
    amount_awarded: int
    streak_position_after_claim: int
    multiplier_applied: float
    new_streak_count: int
    code_date: date
    claimed_at: datetime

    @classmethod
    def from_row(cls, row: UserDailyClaim) -> ClaimResult:
        return cls(
            amount_awarded=row.amount_awarded,
            streak_position_after_claim=row.streak_position,
            multiplier_applied=row.multiplier_applied,
            new_streak_count=row.new_streak_count,
            code_date=row.code_date,
            claimed_at=ensure_utc(row.claimed_at),
        )


@dataclass(frozen=True)
class CodeStateView:
    """Authoritative snapshot returned by currentCodeState."""

    code: str | None
    code_date: date | None
    issued_at: datetime | None
    claim_deadline: datetime | None
    streak_valid_until: datetime | None
    state: CodeState | None
    can_claim: bool
    current_streak: int
    next_reward_amount: int
    next_streak_position: int
    multiplier: float
    seconds_until_next_code: int
    seconds_until_claim_deadline: int
    rewards_enabled: bool


@dataclass(frozen=True)
class StreakStatus:
    current_streak: int
    longest_streak: int
    last_claim_at: datetime | None
    cycle_length: int
    recent_claims: list[ClaimResult]


def _idempotency_key(user_id: str, code_date: date) -> str:
    return f"daily_code:{user_id}:{code_date.isoformat()}"


async def _find_claim(db: AsyncSession, user_id: str, code_date: date) -> UserDailyClaim | None:
    result = await db.execute(
        select(UserDailyClaim).where(
            UserDailyClaim.user_id == user_id,
            UserDailyClaim.code_date == code_date,
        )
    )
    return result.scalar_one_or_none()


async def load_claim_records(db: AsyncSession, user_id: str) -> list[ClaimRecord]:
    """All retained claims for a user, joined with their code windows."""
    result = await db.execute(
        select(UserDailyClaim, DailyCodeRow)
        .join(DailyCodeRow, UserDailyClaim.code_id == DailyCodeRow.id)
        .where(UserDailyClaim.user_id == user_id)
        .order_by(UserDailyClaim.code_date.desc())
    )
    return [
        ClaimRecord(
            code_date=row.UserDailyClaim.code_date,
            code_id=row.UserDailyClaim.code_id,
            claimed_at=row.UserDailyClaim.claimed_at,
            issued_at=row.DailyCodeRow.issued_at,
            streak_valid_until=row.DailyCodeRow.streak_valid_until,
            streak_count=row.UserDailyClaim.new_streak_count,
        )
        for row in result
    ]


async def get_or_create_balance(db: AsyncSession, user_id: str) -> CoinBalance:
    """Get or create the denormalized balance row for a user."""
    result = await db.execute(select(CoinBalance).where(CoinBalance.user_id == user_id))
    balance = result.scalar_one_or_none()
    if balance is None:
        balance = CoinBalance(
            user_id=user_id,
            balance=0,
            total_earned=0,
            updated_at=datetime.now(timezone.utc),
        )
        db.add(balance)
        await db.flush()
    return balance


async def get_balance(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(select(CoinBalance.balance).where(CoinBalance.user_id == user_id))
    return result.scalar_one_or_none() or 0


async def claim_code(
    db: AsyncSession,
    redis: object,
    user_id: str,
    submitted_code: str | None = None,
    now: datetime | None = None,
    *,
    settings: Settings | None = None,
    clock: RolloverClock | None = None,
) -> ClaimResult:
    """Redeem a daily code for ``user_id``.

    ``submitted_code=None`` claims whatever code is active. Raises
    ``ClaimError`` with NOT_CLAIMABLE, CODE_MISMATCH or SYSTEM_DISABLED.
    """
    settings = settings or get_settings()
    clock = clock or get_rollover_clock()
    now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)

    if not settings.rewards_enabled:
        raise ClaimError(ClaimErrorKind.SYSTEM_DISABLED, "UTI Coins daily rewards are currently disabled")

    if submitted_code is not None:
        submitted_code = normalize_code(submitted_code)
        target = await get_code_by_value(db, submitted_code)
        if target is not None:
            replay = await _find_claim(db, user_id, target.code_date)
            if replay is not None and replay.code_id == target.id:
                logger.info("Replaying claim for user %s, code date %s", user_id, target.code_date)
                return ClaimResult.from_row(replay)

    active = await get_active_code(db, now)
    if active is None:
        raise ClaimError(ClaimErrorKind.NOT_CLAIMABLE, "No daily code is available right now")
    if submitted_code is not None and submitted_code != active.code:
        raise ClaimError(ClaimErrorKind.CODE_MISMATCH, "Submitted code does not match today's code")

    existing = await _find_claim(db, user_id, active.code_date)
    if existing is not None:
        logger.info("Replaying claim for user %s, code date %s", user_id, active.code_date)
        return ClaimResult.from_row(existing)

    state = classify(active, now, has_claim_record=False)
    if state is not CodeState.CLAIMABLE:
        raise ClaimError(
            ClaimErrorKind.NOT_CLAIMABLE,
            f"Code for {active.code_date.isoformat()} can no longer be redeemed ({state.value})",
        )

    records = await load_claim_records(db, user_id)
    streak_before = compute_streak(records, today=active.code_date)
    quote = RewardCurve.from_settings(settings).quote(streak_before, settings.reward_multiplier)
    new_streak = streak_before + 1

    claim = UserDailyClaim(
        user_id=user_id,
        code_id=active.id,
        code_date=active.code_date,
        claimed_at=now,
        streak_position=quote.position,
        new_streak_count=new_streak,
        amount_awarded=quote.amount,
        multiplier_applied=quote.multiplier,
    )
    db.add(claim)
    try:
        await db.flush()
    except IntegrityError:
        # Lost the race on (user_id, code_date): hand back the winner's result.
        await db.rollback()
        winner = await _find_claim(db, user_id, active.code_date)
        if winner is None:
            raise
        logger.info("Concurrent claim for user %s on %s resolved to stored result", user_id, active.code_date)
        return ClaimResult.from_row(winner)

    try:
        await _credit(db, user_id, active, quote.amount, quote.position, new_streak, settings, now)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    result = ClaimResult.from_row(claim)
    logger.info(
        "User %s claimed %s: +%d coins (position %d/%d, streak %d)",
        user_id, active.code_date, result.amount_awarded, result.streak_position_after_claim,
        settings.reward_cycle_days, result.new_streak_count,
    )
    await _publish_claim(redis, user_id, result)
    return result


async def _credit(
    db: AsyncSession,
    user_id: str,
    code: DailyCode,
    amount: int,
    position: int,
    new_streak: int,
    settings: Settings,
    now: datetime,
) -> None:
    """Append the ledger entry and bump the balance inside the caller's transaction."""
    db.add(CoinTransaction(
        user_id=user_id,
        amount=amount,
        type="earned",
        reason=CLAIM_REASON,
        description=f"Daily code {code.code} (streak day {position}/{settings.reward_cycle_days})",
        metadata_={
            "code_id": code.id,
            "code_date": code.code_date.isoformat(),
            "streak_position": position,
            "streak": new_streak,
            "cycle_days": settings.reward_cycle_days,
            "increment_type": settings.reward_increment_type,
            "multiplier": settings.reward_multiplier,
        },
        idempotency_key=_idempotency_key(user_id, code.code_date),
        created_at=now,
    ))

    balance = await get_or_create_balance(db, user_id)
    balance.balance = CoinBalance.balance + amount
    balance.total_earned = CoinBalance.total_earned + amount
    balance.updated_at = now
    await db.flush()


async def _publish_claim(redis: object, user_id: str, result: ClaimResult) -> None:
    """Best-effort fan-out so other sessions of the same user resync."""
    if redis is None:
        return
    try:
        await redis.publish(  # type: ignore[attr-defined]
            COINS_CHANNEL,
            json.dumps({
                "user_id": user_id,
                "event": "daily_code_claimed",
                "amount": result.amount_awarded,
                "streak": result.new_streak_count,
                "code_date": result.code_date.isoformat(),
            }),
        )
    except Exception:
        logger.warning("Failed to publish daily_code_claimed event", exc_info=True)


async def get_code_state(
    db: AsyncSession,
    user_id: str,
    now: datetime | None = None,
    *,
    settings: Settings | None = None,
    clock: RolloverClock | None = None,
) -> CodeStateView:
    """Authoritative state for the client: code windows, streak and next reward."""
    settings = settings or get_settings()
    clock = clock or get_rollover_clock()
    now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)

    records = await load_claim_records(db, user_id)
    current_streak = compute_streak(records, today=clock.business_date(now))
    quote = RewardCurve.from_settings(settings).quote(current_streak, settings.reward_multiplier)
    seconds_until_next = clock.seconds_until_next_rollover(now)

    active = await get_active_code(db, now)
    if active is None:
        return CodeStateView(
            code=None, code_date=None, issued_at=None, claim_deadline=None, streak_valid_until=None,
            state=None, can_claim=False, current_streak=current_streak,
            next_reward_amount=quote.amount, next_streak_position=quote.position,
            multiplier=quote.multiplier, seconds_until_next_code=seconds_until_next,
            seconds_until_claim_deadline=0, rewards_enabled=settings.rewards_enabled,
        )

    has_claim = any(rec.code_date == active.code_date for rec in records)
    state = classify(active, now, has_claim)
    return CodeStateView(
        code=active.code,
        code_date=active.code_date,
        issued_at=active.issued_at,
        claim_deadline=active.claim_deadline,
        streak_valid_until=active.streak_valid_until,
        state=state,
        can_claim=settings.rewards_enabled and state is CodeState.CLAIMABLE,
        current_streak=current_streak,
        next_reward_amount=quote.amount,
        next_streak_position=quote.position,
        multiplier=quote.multiplier,
        seconds_until_next_code=seconds_until_next,
        seconds_until_claim_deadline=active.seconds_until_deadline(now),
        rewards_enabled=settings.rewards_enabled,
    )


async def get_streak_status(
    db: AsyncSession,
    user_id: str,
    now: datetime | None = None,
    *,
    recent: int = 7,
    settings: Settings | None = None,
    clock: RolloverClock | None = None,
) -> StreakStatus:
    settings = settings or get_settings()
    clock = clock or get_rollover_clock()
    now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)

    records = await load_claim_records(db, user_id)
    rows = await db.execute(
        select(UserDailyClaim)
        .where(UserDailyClaim.user_id == user_id)
        .order_by(UserDailyClaim.code_date.desc())
        .limit(recent)
    )
    return StreakStatus(
        current_streak=compute_streak(records, today=clock.business_date(now)),
        longest_streak=longest_streak(records),
        last_claim_at=last_claim_at(records),
        cycle_length=settings.reward_cycle_days,
        recent_claims=[ClaimResult.from_row(r) for r in rows.scalars()],
    )


async def list_claims(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[ClaimResult], int]:
    """Paginated claim history, newest first."""
    total = await db.execute(
        select(func.count()).select_from(UserDailyClaim).where(UserDailyClaim.user_id == user_id)
    )
    rows = await db.execute(
        select(UserDailyClaim)
        .where(UserDailyClaim.user_id == user_id)
        .order_by(UserDailyClaim.code_date.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return [ClaimResult.from_row(r) for r in rows.scalars()], total.scalar_one()


async def list_transactions(db: AsyncSession, user_id: str, limit: int = 20) -> list[CoinTransaction]:
    result = await db.execute(
        select(CoinTransaction)
        .where(CoinTransaction.user_id == user_id)
        .order_by(CoinTransaction.created_at.desc(), CoinTransaction.id.desc())
        .limit(limit)
    )
    return list(result.scalars())
