"""Daily-code, coin balance and admin endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from uticoins.auth.dependencies import CurrentUser, get_admin_user, get_current_user
from uticoins.config import get_settings
from uticoins.db.models import CoinBalance
from uticoins.dependencies import get_db, get_redis_dep
from uticoins.rewards.claim_service import (
    ClaimResult,
    claim_code,
    get_code_state,
    get_streak_status,
    list_claims,
    list_transactions,
)
from uticoins.rewards.code_service import cleanup_old_codes, issue_daily_code
from uticoins.rewards.curve import RewardCurve
from uticoins.rewards.schemas import (
    BalanceResponse,
    ClaimErrorResponse,
    ClaimHistoryResponse,
    ClaimRequest,
    ClaimResponse,
    CleanupResponse,
    CodeStateResponse,
    IssueCodeResponse,
    ScheduleEntry,
    ScheduleResponse,
    StreakResponse,
    TransactionEntry,
)

router = APIRouter(prefix="/api/v1", tags=["Daily Codes"])
admin_router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])

_CLAIM_ERRORS = {
    401: {"model": ClaimErrorResponse},
    409: {"model": ClaimErrorResponse},
    503: {"model": ClaimErrorResponse},
}


def _claim_response(result: ClaimResult) -> ClaimResponse:
    return ClaimResponse(
        amount_awarded=result.amount_awarded,
        streak_position_after_claim=result.streak_position_after_claim,
        multiplier_applied=result.multiplier_applied,
        new_streak_count=result.new_streak_count,
        code_date=result.code_date,
        claimed_at=result.claimed_at,
    )


# ── Public endpoints ──


@router.get("/daily-codes/schedule", response_model=ScheduleResponse)
async def get_schedule():
    """Reward table for one full cycle at the current multiplier."""
    settings = get_settings()
    quotes = RewardCurve.from_settings(settings).schedule(settings.reward_multiplier)
    return ScheduleResponse(
        cycle_length=settings.reward_cycle_days,
        increment_type=settings.reward_increment_type,
        multiplier=settings.reward_multiplier,
        rollover_timezone=settings.rollover_timezone,
        rollover_hour=settings.rollover_hour,
        days=[ScheduleEntry(position=q.position, base_amount=q.base_amount, amount=q.amount) for q in quotes],
    )


# ── Authenticated endpoints ──


@router.get("/daily-codes/current", response_model=CodeStateResponse)
async def get_current_code(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Authoritative code state; clients resync their countdown from this."""
    view = await get_code_state(db, user.id)
    return CodeStateResponse(
        code=view.code,
        code_date=view.code_date,
        issued_at=view.issued_at,
        claim_deadline=view.claim_deadline,
        streak_valid_until=view.streak_valid_until,
        state=view.state,
        can_claim=view.can_claim,
        current_streak=view.current_streak,
        next_reward_amount=view.next_reward_amount,
        next_streak_position=view.next_streak_position,
        multiplier=view.multiplier,
        seconds_until_next_code=view.seconds_until_next_code,
        seconds_until_claim_deadline=view.seconds_until_claim_deadline,
        rewards_enabled=view.rewards_enabled,
    )


@router.post("/daily-codes/claim", response_model=ClaimResponse, responses=_CLAIM_ERRORS)
async def post_claim(
    body: ClaimRequest | None = None,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis_dep),
):
    """Redeem today's code. Repeating a successful claim returns the same result."""
    result = await claim_code(db, redis, user.id, body.code if body else None)
    return _claim_response(result)


@router.get("/daily-codes/streak", response_model=StreakResponse)
async def get_streak(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    status = await get_streak_status(db, user.id)
    return StreakResponse(
        current_streak=status.current_streak,
        longest_streak=status.longest_streak,
        last_claim_at=status.last_claim_at,
        cycle_length=status.cycle_length,
        recent_claims=[_claim_response(c) for c in status.recent_claims],
    )


@router.get("/daily-codes/history", response_model=ClaimHistoryResponse)
async def get_claim_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Paginated claim history, newest first."""
    claims, total = await list_claims(db, user.id, page, per_page)
    return ClaimHistoryResponse(
        claims=[_claim_response(c) for c in claims],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/coins/balance", response_model=BalanceResponse)
async def get_coin_balance(
    limit: int = Query(20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Current balance plus the most recent ledger entries."""
    result = await db.execute(select(CoinBalance).where(CoinBalance.user_id == user.id))
    balance = result.scalar_one_or_none()
    transactions = await list_transactions(db, user.id, limit)
    return BalanceResponse(
        balance=balance.balance if balance else 0,
        total_earned=balance.total_earned if balance else 0,
        transactions=[
            TransactionEntry(
                amount=tx.amount,
                type=tx.type,
                reason=tx.reason,
                description=tx.description,
                metadata=tx.metadata_ or {},
                created_at=tx.created_at,
            )
            for tx in transactions
        ],
    )


# ── Admin endpoints ──


@admin_router.post("/daily-codes/issue", response_model=IssueCodeResponse)
async def admin_issue_code(
    _admin: CurrentUser = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
):
    """Issue the code for the current business date if the worker has not yet."""
    code, created = await issue_daily_code(db)
    return IssueCodeResponse(
        created=created,
        code=code.code,
        code_date=code.code_date,
        issued_at=code.issued_at,
        claim_deadline=code.claim_deadline,
        streak_valid_until=code.streak_valid_until,
    )


@admin_router.post("/daily-codes/cleanup", response_model=CleanupResponse)
async def admin_cleanup(
    _admin: CurrentUser = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
):
    removed = await cleanup_old_codes(db)
    return CleanupResponse(**removed)
