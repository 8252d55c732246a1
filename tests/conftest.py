"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fixtures for testing:
- Settings bound to a temporary SQLite database
- Real async sessions, credential store and quota ledger
- Account factory
- Mocked generative provider
- API test client built through the application factory
"""

import asyncio
import os
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession

# Set required environment variables BEFORE importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./tarot-test.db")

from tarot_api.config import Settings
from tarot_api.db.session import Database
from tarot_api.main import create_app
from tarot_api.models.api import CreateAccountRequest
from tarot_api.models.domain import AccountData, AuthContext
from tarot_api.services.credentials import CredentialStore
from tarot_api.services.quota import QuotaLedger

ADMIN_SECRET = "test-admin-secret"
READING_TEXT = "The Star shines on the path ahead."


# ============================================================================
# Settings
# ============================================================================


def build_settings(db_path: Path, **overrides: Any) -> Settings:
    """Settings for one test, isolated from the developer's .env."""
    values: dict[str, Any] = {
        "database_url": f"sqlite+aiosqlite:///{db_path}",
        "admin_secret_key": ADMIN_SECRET,
        "gemini_api_key": "test-gemini-key",
        "auto_create_schema": True,
        "log_level": "WARNING",
        "log_format": "console",
        "tracing_enabled": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)  # type: ignore[call-arg]


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "tarot.db"


@pytest.fixture
def settings(db_path: Path) -> Settings:
    return build_settings(db_path)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def database(settings: Settings) -> AsyncIterator[Database]:
    """Fresh schema in a temporary SQLite file."""
    db = Database(settings)
    await db.create_schema()
    yield db
    await db.dispose()


@pytest.fixture
async def session(database: Database) -> AsyncIterator[AsyncSession]:
    async with database.session() as s:
        yield s


@pytest.fixture
def store(session: AsyncSession) -> CredentialStore:
    return CredentialStore(session)


@pytest.fixture
def ledger(session: AsyncSession) -> QuotaLedger:
    return QuotaLedger(session)


# ============================================================================
# Account Fixtures
# ============================================================================


AccountFactory = Callable[..., Awaitable[AccountData]]


@pytest.fixture
def make_account(store: CredentialStore) -> AccountFactory:
    """Factory for persisted accounts with sensible defaults."""
    counter = {"n": 0}

    async def _make(
        username: str | None = None,
        password: str = "secret123",
        usage_limit: int = 10,
        **fields: Any,
    ) -> AccountData:
        counter["n"] += 1
        name = username or f"user{counter['n']}"
        fields.setdefault("email", f"{name}@example.com")
        return await store.create_account(
            CreateAccountRequest(
                username=name,
                password=password,
                usage_limit=usage_limit,
                **fields,
            )
        )

    return _make


@pytest.fixture
async def active_account(make_account: AccountFactory) -> AccountData:
    """Active account with ten calls and thirty days of validity."""
    return await make_account(
        username="alice",
        usage_limit=10,
        valid_to=datetime.now(UTC) + timedelta(days=30),
    )


@pytest.fixture
def auth_for() -> Callable[[AccountData], AuthContext]:
    """AuthContext as the auth gate would build it."""

    def _auth(account: AccountData) -> AuthContext:
        return AuthContext(account=account, token=account.api_token)

    return _auth


# ============================================================================
# Generative Provider Mocks
# ============================================================================


def create_mock_generator(
    reply: str = READING_TEXT,
    configured: bool = True,
    side_effect: Any = None,
) -> MagicMock:
    """Mock TextGenerator; generate() is an AsyncMock recording prompts."""
    generator = MagicMock()
    generator.is_configured = configured
    generator.generate = AsyncMock(return_value=reply, side_effect=side_effect)
    return generator


def slow_reply(delay: float, reply: str = READING_TEXT) -> Callable[[str], Awaitable[str]]:
    """side_effect that answers after a delay."""

    async def _generate(prompt: str) -> str:
        await asyncio.sleep(delay)
        return reply

    return _generate


@pytest.fixture
def generator_factory() -> Callable[..., MagicMock]:
    return create_mock_generator


@pytest.fixture
def slow_generator() -> Callable[..., MagicMock]:
    """Mock generator whose replies arrive after a delay."""

    def _build(delay: float) -> MagicMock:
        return create_mock_generator(side_effect=slow_reply(delay))

    return _build


@pytest.fixture
def mock_generator() -> MagicMock:
    return create_mock_generator()


# ============================================================================
# API Client Fixtures
# ============================================================================


@pytest.fixture
def app_factory(db_path: Path, mock_generator: MagicMock) -> Callable[..., TestClient]:
    """Build a TestClient for an app with optional settings overrides."""

    def _build(generator: Any = None, **overrides: Any) -> TestClient:
        app_settings = build_settings(db_path, **overrides)
        app = create_app(app_settings, generator=generator or mock_generator)
        return TestClient(app)

    return _build


@pytest.fixture
def client(app_factory: Callable[..., TestClient]) -> Iterator[TestClient]:
    with app_factory() as test_client:
        yield test_client


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Secret": ADMIN_SECRET}


@pytest.fixture
def create_user(client: TestClient) -> Callable[..., dict[str, Any]]:
    """Create an account through the admin dispatcher and return its data."""

    def _create(**params: Any) -> dict[str, Any]:
        return create_user_via_admin(client, **params)

    return _create


def create_user_via_admin(client: TestClient, **params: Any) -> dict[str, Any]:
    params.setdefault("password", "secret123")
    params.setdefault("email", f"{params['username']}@example.com")
    response = client.post(
        "/admin/dispatch",
        json={"action": "create_user", "params": params},
        headers={"X-Admin-Secret": ADMIN_SECRET},
    )
    assert response.status_code == 200, response.text
    return response.json()["data"]
