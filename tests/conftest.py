"""Pytest configuration and fixtures."""

import os
import re
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, urlparse

# Set test environment before importing app
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = ""
os.environ["TOKEN_SWEEP_INTERVAL_SECONDS"] = "0"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from linkgate.api.deps import get_backend
from linkgate.config import Settings
from linkgate.database import create_engine, init_db, make_session_factory
from linkgate.main import app
from linkgate.services.backend import AuthBackend, build_backend
from linkgate.services.email import EmailBackend, EmailService

LINK_PATTERN = re.compile(r"https?://\S+")


class FakeClock:
    """Controllable clock for expiry and window tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingEmailBackend(EmailBackend):
    """Email backend that keeps sent messages in memory."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail = False

    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> bool:
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return not self.fail

    def last_link(self) -> str:
        match = LINK_PATTERN.search(self.sent[-1]["text"])
        assert match, "no link in last email"
        return match.group(0)

    def last_token(self) -> str:
        return parse_qs(urlparse(self.last_link()).query)["token"][0]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def email_backend() -> RecordingEmailBackend:
    return RecordingEmailBackend()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a small admin allow-list and the default limits."""
    return Settings(
        _env_file=None,
        environment="test",
        database_url="",
        admin_emails=["boss@example.com"],
        admin_domains=["staff.example.org"],
        app_url="http://app.test",
        magic_link_expiration_minutes=15,
        session_expiration_days=30,
        rate_limit_requests=5,
        rate_limit_window_seconds=3600,
    )


@pytest.fixture
def backend(test_settings, email_backend, clock) -> AuthBackend:
    """In-memory (degraded mode) backend."""
    return build_backend(
        test_settings,
        email_service=EmailService(backend=email_backend, expiration_minutes=15),
        clock=clock,
    )


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """SQLite database with all tables, for exercising the SQL stores."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'linkgate.db'}")
    await init_db(engine)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def sql_backend(test_settings, email_backend, clock, session_factory) -> AuthBackend:
    """Durable backend on SQLite."""
    return build_backend(
        test_settings,
        session_factory=session_factory,
        email_service=EmailService(backend=email_backend, expiration_minutes=15),
        clock=clock,
    )


@pytest.fixture
async def client(backend: AuthBackend) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client bound to the in-memory backend."""
    app.dependency_overrides[get_backend] = lambda: backend

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def sql_client(sql_backend: AuthBackend) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client bound to the SQLite backend."""
    app.dependency_overrides[get_backend] = lambda: sql_backend

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
