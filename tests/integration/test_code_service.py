"""Integration tests for code issuance, lookup and pruning."""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

from uticoins.config import Settings
from uticoins.db.models import DailyCodeRow, UserDailyClaim
from uticoins.rewards.code_service import (
    cleanup_old_codes,
    generate_code,
    get_active_code,
    get_code_by_value,
    issue_daily_code,
    normalize_code,
)

DAY = date(2026, 3, 10)


class TestGenerateCode:
    def test_numeric_of_requested_length(self):
        for length in (4, 6, 8):
            code = generate_code(length)
            assert len(code) == length
            assert code.isdigit()

    def test_normalize_code(self):
        assert normalize_code(" 482-913 ") == "482913"
        assert normalize_code("482 913") == "482913"


class TestIssueDailyCode:
    @pytest.mark.asyncio
    async def test_issue_sets_windows_from_rollover(self, db_session, clock):
        now = clock.rollover_at(DAY) + timedelta(seconds=5)
        code, created = await issue_daily_code(db_session, now, clock=clock)

        assert created is True
        assert code.code_date == DAY
        assert code.issued_at == now
        assert code.claim_deadline == clock.rollover_at(DAY + timedelta(days=1))
        assert code.streak_valid_until == code.claim_deadline + timedelta(hours=24)
        assert code.id is not None

    @pytest.mark.asyncio
    async def test_issue_is_idempotent_per_business_date(self, db_session, clock):
        first, created_first = await issue_daily_code(db_session, clock.rollover_at(DAY) + timedelta(seconds=5), clock=clock)
        second, created_second = await issue_daily_code(db_session, clock.rollover_at(DAY) + timedelta(hours=6), clock=clock)

        assert created_first is True
        assert created_second is False
        assert second.code == first.code
        count = await db_session.execute(select(func.count()).select_from(DailyCodeRow))
        assert count.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_before_rollover_belongs_to_previous_date(self, db_session, clock):
        code, _ = await issue_daily_code(db_session, clock.rollover_at(DAY) - timedelta(minutes=1), clock=clock)
        assert code.code_date == DAY - timedelta(days=1)

    @pytest.mark.asyncio
    async def test_custom_code_length(self, db_session, clock):
        settings = Settings(code_length=8)
        code, _ = await issue_daily_code(
            db_session, clock.rollover_at(DAY) + timedelta(seconds=5), settings=settings, clock=clock
        )
        assert len(code.code) == 8


class TestActiveCode:
    @pytest.mark.asyncio
    async def test_no_codes(self, db_session, clock):
        assert await get_active_code(db_session, clock.rollover_at(DAY)) is None

    @pytest.mark.asyncio
    async def test_newer_code_supersedes(self, db_session, clock, issue_code):
        await issue_code(DAY - timedelta(days=1))
        today = await issue_code(DAY)

        active = await get_active_code(db_session, clock.rollover_at(DAY) + timedelta(hours=1))
        assert active.code == today.code

    @pytest.mark.asyncio
    async def test_future_code_not_active(self, db_session, clock, issue_code):
        yesterday = await issue_code(DAY - timedelta(days=1))
        await issue_code(DAY)

        active = await get_active_code(db_session, clock.rollover_at(DAY) - timedelta(minutes=5))
        assert active.code == yesterday.code

    @pytest.mark.asyncio
    async def test_code_past_streak_window_is_not_active(self, db_session, clock, issue_code):
        code = await issue_code(DAY)
        assert await get_active_code(db_session, code.streak_valid_until) is None
        assert await get_active_code(db_session, code.streak_valid_until - timedelta(seconds=1)) is not None

    @pytest.mark.asyncio
    async def test_lookup_by_value(self, db_session, issue_code):
        code = await issue_code(DAY)
        found = await get_code_by_value(db_session, f" {code.code} ")
        assert found == code


class TestCleanup:
    @pytest.mark.asyncio
    async def test_prunes_outside_retention(self, db_session, clock, seed_streak):
        await seed_streak("user-a", DAY, days=12)
        settings = Settings(claim_retention_days=10)

        removed = await cleanup_old_codes(db_session, clock.rollover_at(DAY) + timedelta(hours=1), settings=settings, clock=clock)

        assert removed == {"claims": 2, "codes": 2}
        oldest = await db_session.execute(select(func.min(UserDailyClaim.code_date)))
        assert oldest.scalar_one() == DAY - timedelta(days=10)

    @pytest.mark.asyncio
    async def test_retention_never_shorter_than_cycle(self, db_session, clock, seed_streak):
        await seed_streak("user-a", DAY, days=9)
        settings = Settings(claim_retention_days=1)

        removed = await cleanup_old_codes(db_session, clock.rollover_at(DAY) + timedelta(hours=1), settings=settings, clock=clock)

        # Seven-day cycle keeps eight days of history.
        assert removed == {"claims": 1, "codes": 1}
