"""Pydantic request/response models for the daily-code and coin endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from uticoins.rewards.lifecycle import CodeState


# --- Code state ---


class CodeStateResponse(BaseModel):
    code: str | None = None
    code_date: date | None = None
    issued_at: datetime | None = None
    claim_deadline: datetime | None = None
    streak_valid_until: datetime | None = None
    state: CodeState | None = None
    can_claim: bool
    current_streak: int
    next_reward_amount: int
    next_streak_position: int
    multiplier: float
    seconds_until_next_code: int
    seconds_until_claim_deadline: int
    rewards_enabled: bool = True


# --- Claim ---


class ClaimRequest(BaseModel):
    """``code`` omitted claims today's active code."""

    code: str | None = Field(default=None, min_length=1, max_length=32)


class ClaimResponse(BaseModel):
    amount_awarded: int
    streak_position_after_claim: int
    multiplier_applied: float
    new_streak_count: int
    code_date: date
    claimed_at: datetime


class ClaimErrorResponse(BaseModel):
    detail: str
    kind: str


# --- Streak / history ---


class StreakResponse(BaseModel):
    current_streak: int
    longest_streak: int
    last_claim_at: datetime | None = None
    cycle_length: int
    recent_claims: list[ClaimResponse]


class ClaimHistoryResponse(BaseModel):
    claims: list[ClaimResponse]
    total: int
    page: int
    per_page: int


# --- Schedule ---


class ScheduleEntry(BaseModel):
    position: int
    base_amount: int
    amount: int


class ScheduleResponse(BaseModel):
    cycle_length: int
    increment_type: str
    multiplier: float
    rollover_timezone: str
    rollover_hour: int
    days: list[ScheduleEntry]


# --- Coins ---


class TransactionEntry(BaseModel):
    amount: int
    type: str
    reason: str
    description: str | None = None
    metadata: dict = {}
    created_at: datetime | None = None


class BalanceResponse(BaseModel):
    balance: int
    total_earned: int
    transactions: list[TransactionEntry]


# --- Admin ---


class IssueCodeResponse(BaseModel):
    created: bool
    code: str
    code_date: date
    issued_at: datetime
    claim_deadline: datetime
    streak_valid_until: datetime


class CleanupResponse(BaseModel):
    claims: int
    codes: int
