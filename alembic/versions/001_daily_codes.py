"""Daily codes, per-user claims and the UTI Coins ledger.

The (user_id, code_date) unique key on user_daily_claims is the claim lock:
a second claim for the same business date fails the insert.

Revision ID: 001_daily_codes
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa  # noqa: F401
from alembic import op

revision: str = "001_daily_codes"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS daily_codes (
            id                 BIGSERIAL PRIMARY KEY,
            code               VARCHAR(16) NOT NULL UNIQUE,
            code_date          DATE NOT NULL UNIQUE,
            issued_at          TIMESTAMPTZ NOT NULL,
            claim_deadline     TIMESTAMPTZ NOT NULL,
            streak_valid_until TIMESTAMPTZ NOT NULL,
            CONSTRAINT daily_codes_window_order
                CHECK (issued_at < claim_deadline AND claim_deadline <= streak_valid_until)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_daily_claims (
            id                 BIGSERIAL PRIMARY KEY,
            user_id            VARCHAR(64) NOT NULL,
            code_id            BIGINT NOT NULL REFERENCES daily_codes(id) ON DELETE CASCADE,
            code_date          DATE NOT NULL,
            claimed_at         TIMESTAMPTZ NOT NULL,
            streak_position    INT NOT NULL,
            new_streak_count   INT NOT NULL,
            amount_awarded     INT NOT NULL,
            multiplier_applied DOUBLE PRECISION NOT NULL DEFAULT 1,
            CONSTRAINT user_daily_claims_user_id_code_date_key UNIQUE (user_id, code_date)
        )
    """)

    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_daily_claims_user_date
        ON user_daily_claims (user_id, code_date DESC)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS coin_transactions (
            id              BIGSERIAL PRIMARY KEY,
            user_id         VARCHAR(64) NOT NULL,
            amount          INT NOT NULL,
            type            VARCHAR(16) NOT NULL DEFAULT 'earned',
            reason          VARCHAR(32) NOT NULL,
            description     VARCHAR(256),
            metadata        JSONB NOT NULL DEFAULT '{}',
            idempotency_key VARCHAR(256) UNIQUE,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)

    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_coin_transactions_user_id
        ON coin_transactions (user_id)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS coin_balances (
            user_id      VARCHAR(64) PRIMARY KEY,
            balance      BIGINT NOT NULL DEFAULT 0,
            total_earned BIGINT NOT NULL DEFAULT 0,
            updated_at   TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS coin_balances CASCADE")
    op.execute("DROP TABLE IF EXISTS coin_transactions CASCADE")
    op.execute("DROP TABLE IF EXISTS user_daily_claims CASCADE")
    op.execute("DROP TABLE IF EXISTS daily_codes CASCADE")
