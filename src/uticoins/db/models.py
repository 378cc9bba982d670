"""ORM models for daily codes, claims and the coin ledger.

Users live in the hosted auth provider; ``user_id`` columns hold its subject
identifier and carry no foreign key.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from uticoins.db.base import Base

# BIGSERIAL on Postgres; SQLite only autoincrements INTEGER PRIMARY KEY.
BigId = BigInteger().with_variant(Integer, "sqlite")
JsonDoc = JSON().with_variant(JSONB, "postgresql")


# ---------------------------------------------------------------------------
# Daily codes
# ---------------------------------------------------------------------------


class DailyCodeRow(Base):
    """One rotating code per business date."""

    __tablename__ = "daily_codes"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    code_date: Mapped[date] = mapped_column(Date, unique=True, nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    claim_deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    streak_valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    claims: Mapped[list[UserDailyClaim]] = relationship("UserDailyClaim", back_populates="daily_code")


class UserDailyClaim(Base):
    """A redeemed code. The unique (user_id, code_date) key is the claim lock."""

    __tablename__ = "user_daily_claims"
    __table_args__ = (
        UniqueConstraint("user_id", "code_date", name="user_daily_claims_user_id_code_date_key"),
        Index("idx_user_daily_claims_user_date", "user_id", "code_date"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    code_id: Mapped[int] = mapped_column(
        BigId, ForeignKey("daily_codes.id", ondelete="CASCADE"), nullable=False
    )
    code_date: Mapped[date] = mapped_column(Date, nullable=False)
    claimed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    streak_position: Mapped[int] = mapped_column(Integer, nullable=False)
    new_streak_count: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_awarded: Mapped[int] = mapped_column(Integer, nullable=False)
    multiplier_applied: Mapped[float] = mapped_column(Float, nullable=False, server_default="1")

    daily_code: Mapped[DailyCodeRow] = relationship("DailyCodeRow", back_populates="claims")


# ---------------------------------------------------------------------------
# Coin ledger
# ---------------------------------------------------------------------------


class CoinTransaction(Base):
    """Immutable coin transaction log with idempotency key."""

    __tablename__ = "coin_transactions"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, server_default="earned")
    reason: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JsonDoc, nullable=False, default=dict)
    idempotency_key: Mapped[str | None] = mapped_column(String(256), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class CoinBalance(Base):
    """Denormalized balance: single row per user, O(1) reads."""

    __tablename__ = "coin_balances"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0", default=0)
    total_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0", default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
