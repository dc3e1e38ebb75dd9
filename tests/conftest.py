"""Shared test configuration and fixtures.

Each test gets a fresh database (a temporary SQLite file unless
``TEST_DATABASE_URL`` points at a PostgreSQL test database) with all tables
created from ``Base.metadata``. Stripe is never called: signatures are
computed locally and the Stripe client dependency is replaced by a mock.
"""

import hashlib
import hmac
import os
import time
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime
from unittest.mock import MagicMock

# Secrets must be in the environment before app.config is imported.
os.environ["ENVIRONMENT"] = "test"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["CRON_SECRET"] = "cron-test-secret"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.api.v1.cron import utcnow
from app.billing.stripe_client import get_stripe_client
from app.billing.webhooks import clear_hooks
from app.database import Base, get_session_factory
from app.main import app
from app.models.subscription import Subscription

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]
CRON_SECRET = os.environ["CRON_SECRET"]

# Fixed clock for endpoint tests (naive UTC, like the DB columns)
FIXED_NOW = datetime(2024, 3, 1, 12, 0, 0)


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``Stripe-Signature`` header for ``payload`` the way Stripe does."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh engine with all tables created, dropped again after the test."""
    url = os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'billing_test.db'}"
    engine = create_async_engine(url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def create_subscription(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[Subscription]]:
    """Factory fixture: insert and commit a subscription, return it."""

    async def _create(**fields) -> Subscription:
        fields.setdefault("status", "active")
        fields.setdefault("billing_interval", "month")
        fields.setdefault("cancel_at_period_end", False)
        subscription = Subscription(**fields)
        async with session_factory() as db, db.begin():
            db.add(subscription)
        return subscription

    return _create


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
def stripe_client() -> MagicMock:
    """Stand-in for StripeClient; endpoint tests patch the wrapper functions."""
    return MagicMock(name="StripeClient")


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    stripe_client: MagicMock,
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test DB, a fixed clock and a fake Stripe client."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_stripe_client] = lambda: stripe_client
    app.dependency_overrides[utcnow] = lambda: FIXED_NOW

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _reset_webhook_hooks():
    yield
    clear_hooks()


@pytest.fixture
def sign() -> Callable[..., str]:
    """The ``sign_payload`` helper, as a fixture."""
    return sign_payload


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def cron_headers() -> dict[str, str]:
    """Authorization headers carrying the shared cron secret."""
    return {"Authorization": f"Bearer {CRON_SECRET}"}
