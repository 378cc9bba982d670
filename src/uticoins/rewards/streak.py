"""Streak calculation from claimed-code history.

The streak is the length of the run of consecutive business dates ending at
today (or yesterday, while today's code is still unclaimed). Claims are
attributed to their code's business date, not to the instant of the claim.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from uticoins.rewards.clock import ensure_utc

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class ClaimRecord:
    """One redeemed code as seen by the streak calculator."""

    code_date: date
    code_id: int
    claimed_at: datetime
    issued_at: datetime | None = None
    streak_valid_until: datetime | None = None
    streak_count: int | None = None  # streak produced by this claim, when stored

    @property
    def is_well_formed(self) -> bool:
        """False when the claim was recorded outside its code's validity window."""
        claimed_at = ensure_utc(self.claimed_at)
        if self.streak_valid_until is not None and claimed_at >= ensure_utc(self.streak_valid_until):
            return False
        if self.issued_at is not None and claimed_at < ensure_utc(self.issued_at):
            return False
        return True


def _one_per_date(records: Iterable[ClaimRecord]) -> list[ClaimRecord]:
    """Collapse to one record per date (earliest claim wins), newest date first."""
    by_date: dict[date, ClaimRecord] = {}
    for rec in records:
        current = by_date.get(rec.code_date)
        if current is None or ensure_utc(rec.claimed_at) < ensure_utc(current.claimed_at):
            by_date[rec.code_date] = rec
    return [by_date[d] for d in sorted(by_date, reverse=True)]


def compute_streak(records: Iterable[ClaimRecord], today: date) -> int:
    """Current consecutive-day count as of business date ``today``.

    Returns 0 when the most recent claim is older than yesterday. When the
    run reaches the oldest retained record, that record's stored streak count
    (if any) continues the run past pruned history.
    """
    ordered = _one_per_date(records)
    if not ordered:
        return 0
    if ordered[0].code_date < today - ONE_DAY:
        return 0

    count = 0
    expected: date | None = None
    for index, rec in enumerate(ordered):
        if expected is not None and rec.code_date != expected:
            break
        if not rec.is_well_formed:
            break
        count += 1
        expected = rec.code_date - ONE_DAY
        is_oldest = index == len(ordered) - 1
        if is_oldest and rec.streak_count is not None and rec.streak_count > 1:
            count += rec.streak_count - 1
    return count


def longest_streak(records: Iterable[ClaimRecord]) -> int:
    """Longest run of consecutive well-formed claim dates in the retained history."""
    dates = sorted({rec.code_date for rec in _one_per_date(records) if rec.is_well_formed})
    best = 0
    run = 0
    previous: date | None = None
    for d in dates:
        run = run + 1 if previous is not None and d - previous == ONE_DAY else 1
        best = max(best, run)
        previous = d
    return best


def last_claim_at(records: Iterable[ClaimRecord]) -> datetime | None:
    claimed = [ensure_utc(rec.claimed_at) for rec in records]
    return max(claimed) if claimed else None
