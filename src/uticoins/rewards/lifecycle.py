"""Daily code windows and lifecycle classification.

A code has two horizons: ``claim_deadline`` (last instant it pays a reward,
exclusive) and ``streak_valid_until`` (last instant it counts toward streak
continuity, exclusive). Classification is a pure function of
(code, now, has_claim_record).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from uticoins.rewards.clock import RolloverClock, ensure_utc


class InvalidCodeWindowError(ValueError):
    """Raised when a code's windows are not ordered issued < deadline <= valid_until."""


class CodeState(str, enum.Enum):
    CLAIMABLE = "claimable"
    STREAK_ONLY = "streak_only"
    EXPIRED = "expired"
    CLAIMED = "claimed"


@dataclass(frozen=True)
class DailyCode:
    """Immutable view of an issued daily code."""

    code: str
    code_date: date
    issued_at: datetime
    claim_deadline: datetime
    streak_valid_until: datetime
    id: int | None = None

    def __post_init__(self) -> None:
        # Normalize so comparisons never mix naive and aware datetimes.
        object.__setattr__(self, "issued_at", ensure_utc(self.issued_at))
        object.__setattr__(self, "claim_deadline", ensure_utc(self.claim_deadline))
        object.__setattr__(self, "streak_valid_until", ensure_utc(self.streak_valid_until))
        if not self.code:
            raise InvalidCodeWindowError("Daily code value must not be empty")
        if not self.issued_at < self.claim_deadline <= self.streak_valid_until:
            raise InvalidCodeWindowError(
                f"Invalid windows for code {self.code}: issued_at={self.issued_at.isoformat()}, "
                f"claim_deadline={self.claim_deadline.isoformat()}, "
                f"streak_valid_until={self.streak_valid_until.isoformat()}"
            )

    @classmethod
    def for_business_date(
        cls,
        code: str,
        code_date: date,
        issued_at: datetime,
        clock: RolloverClock,
        streak_grace_hours: int = 24,
    ) -> DailyCode:
        """Build a code whose claim window closes at the next rollover."""
        if streak_grace_hours < 0:
            raise InvalidCodeWindowError("streak_grace_hours must be >= 0")
        claim_deadline = clock.rollover_at(code_date + timedelta(days=1))
        return cls(
            code=code,
            code_date=code_date,
            issued_at=issued_at,
            claim_deadline=claim_deadline,
            streak_valid_until=claim_deadline + timedelta(hours=streak_grace_hours),
        )

    @classmethod
    def from_row(cls, row: object) -> DailyCode:
        """Build from a ``DailyCodeRow`` (or anything with the same attributes)."""
        return cls(
            code=row.code,  # type: ignore[attr-defined]
            code_date=row.code_date,  # type: ignore[attr-defined]
            issued_at=row.issued_at,  # type: ignore[attr-defined]
            claim_deadline=row.claim_deadline,  # type: ignore[attr-defined]
            streak_valid_until=row.streak_valid_until,  # type: ignore[attr-defined]
            id=row.id,  # type: ignore[attr-defined]
        )

    def seconds_until_deadline(self, now: datetime) -> int:
        return max(0, int((self.claim_deadline - ensure_utc(now)).total_seconds()))


def classify(code: DailyCode, now: datetime, has_claim_record: bool) -> CodeState:
    """Classify ``code`` at ``now`` for a user. No side effects."""
    if has_claim_record:
        return CodeState.CLAIMED
    now = ensure_utc(now)
    if now < code.claim_deadline:
        return CodeState.CLAIMABLE
    if now < code.streak_valid_until:
        return CodeState.STREAK_ONLY
    return CodeState.EXPIRED
