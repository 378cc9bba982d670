"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Callable
from datetime import date, timedelta

# Settings are read at import time by the app factory; pin them first.
os.environ["UTI_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["UTI_JWT_SECRET"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["UTI_LOG_FORMAT"] = "console"
os.environ["UTI_ENVIRONMENT"] = "test"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from uticoins.auth.jwt import create_access_token  # noqa: E402
from uticoins.config import get_settings  # noqa: E402
from uticoins.database import close_db, get_engine, get_session, init_db  # noqa: E402
from uticoins.db.models import Base, UserDailyClaim  # noqa: E402
from uticoins.main import create_app  # noqa: E402
from uticoins.rewards.clock import RolloverClock, get_rollover_clock  # noqa: E402
from uticoins.rewards.code_service import issue_daily_code  # noqa: E402
from uticoins.rewards.curve import RewardCurve  # noqa: E402
from uticoins.rewards.lifecycle import DailyCode  # noqa: E402

USER_ID = "7c9e6679-7425-40de-944b-e07fc1f90ae7"


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Tests may tweak UTI_* env vars; never leak cached settings between tests."""
    get_settings.cache_clear()
    get_rollover_clock.cache_clear()
    yield
    get_settings.cache_clear()
    get_rollover_clock.cache_clear()


@pytest.fixture
def clock() -> RolloverClock:
    return RolloverClock()


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[None, None]:
    """Fresh SQLite database per test, schema created from the ORM metadata."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'uticoins.db'}")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for service calls and assertions."""
    async for session in get_session():
        yield session
        break


@pytest_asyncio.fixture
async def client(database) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client. Redis is not initialized, so rate limiting is bypassed."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Build a bearer header for any user id / role."""

    def _headers(user_id: str = USER_ID, role: str = "authenticated") -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}

    return _headers


@pytest.fixture
def issue_code(db_session: AsyncSession, clock: RolloverClock):
    """Issue the code for ``day`` a few seconds after its rollover."""

    async def _issue(day: date) -> DailyCode:
        code, _ = await issue_daily_code(db_session, clock.rollover_at(day) + timedelta(seconds=5), clock=clock)
        return code

    return _issue


@pytest.fixture
def seed_streak(db_session: AsyncSession, clock: RolloverClock, issue_code):
    """Record consecutive claims for ``user_id`` ending the day before ``today``.

    Rows are written directly, the way the claim protocol would have stored
    them, so a test can start from any streak length.
    """

    async def _seed(user_id: str, today: date, days: int, first_count: int = 1) -> list[DailyCode]:
        curve = RewardCurve()
        codes = []
        for offset in range(days, 0, -1):
            day = today - timedelta(days=offset)
            code = await issue_code(day)
            count = first_count + (days - offset)
            quote = curve.quote(count - 1)
            db_session.add(UserDailyClaim(
                user_id=user_id,
                code_id=code.id,
                code_date=day,
                claimed_at=code.issued_at + timedelta(hours=1),
                streak_position=quote.position,
                new_streak_count=count,
                amount_awarded=quote.amount,
                multiplier_applied=1.0,
            ))
            codes.append(code)
        await db_session.commit()
        return codes

    return _seed

