"""Reward curve: streak position -> coin amount, cycling every ``cycle_length`` days.

Default parameters pay 30, 37, 43, 50, 57, 63, 70 for positions 1..7 and
wrap back to 30 on day 8.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from uticoins.config import Settings, get_settings

INCREMENT_CALCULATED = "calculated"
INCREMENT_FIXED = "fixed"


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive amounts (Python's round() is half-even)."""
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class RewardQuote:
    """Amount a claim pays at a given streak."""

    position: int
    base_amount: int
    multiplier: float
    amount: int


@dataclass(frozen=True)
class RewardCurve:
    base: int = 30
    cap: int = 70
    cycle_length: int = 7
    increment_type: str = INCREMENT_CALCULATED
    fixed_increment: int = 10

    def __post_init__(self) -> None:
        if self.cycle_length < 1:
            raise ValueError(f"cycle_length must be >= 1, got {self.cycle_length}")
        if self.base < 0 or self.cap < self.base:
            raise ValueError(f"Invalid curve bounds: base={self.base}, cap={self.cap}")
        if self.increment_type not in (INCREMENT_CALCULATED, INCREMENT_FIXED):
            raise ValueError(f"Unknown increment type: {self.increment_type}")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> RewardCurve:
        settings = settings or get_settings()
        return cls(
            base=settings.reward_base_amount,
            cap=settings.reward_max_amount,
            cycle_length=settings.reward_cycle_days,
            increment_type=settings.reward_increment_type,
            fixed_increment=settings.reward_fixed_increment,
        )

    def position_for(self, streak_before_claim: int) -> int:
        """1-indexed position in the cycle for the claim after ``streak_before_claim`` days."""
        return (max(0, streak_before_claim) % self.cycle_length) + 1

    def amount_at(self, position: int) -> int:
        """Base amount (no multiplier) at a 1-indexed position; positions wrap."""
        if position < 1:
            raise ValueError(f"position must be >= 1, got {position}")
        pos = (position - 1) % self.cycle_length + 1
        if self.increment_type == INCREMENT_FIXED:
            return min(self.base + (pos - 1) * self.fixed_increment, self.cap)
        if self.cycle_length == 1:
            return self.base
        return round_half_up(self.base + (self.cap - self.base) * (pos - 1) / (self.cycle_length - 1))

    def quote(self, streak_before_claim: int, multiplier: float = 1.0) -> RewardQuote:
        """The one place a multiplier is applied: used for display and for crediting."""
        if multiplier < 0:
            raise ValueError(f"multiplier must be >= 0, got {multiplier}")
        position = self.position_for(streak_before_claim)
        base_amount = self.amount_at(position)
        return RewardQuote(
            position=position,
            base_amount=base_amount,
            multiplier=multiplier,
            amount=round_half_up(base_amount * multiplier),
        )

    def schedule(self, multiplier: float = 1.0) -> list[RewardQuote]:
        """The full cycle, position 1..cycle_length."""
        return [self.quote(position - 1, multiplier) for position in range(1, self.cycle_length + 1)]
