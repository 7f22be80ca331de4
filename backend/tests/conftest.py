"""
Test configuration and fixtures for the entitlements service.

Provides shared fixtures for unit and integration tests: a throwaway
SQLite database per test, the FastAPI app wired to it, a fixed clock,
row factories and signed credentials.
"""

import hashlib
import hmac
import os
import time
from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock

# Settings are read at import time; configure them before importing the app
os.environ["ENVIRONMENT"] = "testing"
os.environ["JWT_SECRET"] = "test-jwt-secret-for-entitlements-suite-0123456789"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_entitlements"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_entitlements"
os.environ.pop("DATABASE_URL", None)

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.config.settings import get_settings
from app.domain.subscription import BillingCycle, UserRole
from app.infrastructure.db.database import build_session_factory, configure_sqlite
from app.infrastructure.db.models import Asset, SubscriptionPlan, User


# =============================================================================
# Clock
# =============================================================================

class FixedClock:
    """Injectable naive-UTC clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current

    def set(self, value: datetime) -> datetime:
        self.current = value
        return self.current


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 3, 10, 12, 0, 0))


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite engine with working SAVEPOINTs and foreign keys."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'entitlements.db'}")
    configure_sqlite(engine)

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# =============================================================================
# Row Factories
# =============================================================================

@pytest.fixture
def make_user(session):
    """Create and commit a user."""
    counter = {"n": 0}

    async def _make(role: UserRole = UserRole.USER, is_active: bool = True, name: str = None) -> User:
        counter["n"] += 1
        user = User(
            email=f"user{counter['n']}@example.com",
            name=name or f"User {counter['n']}",
            role=role.value,
            is_active=is_active,
        )
        session.add(user)
        await session.commit()
        return user

    return _make


@pytest.fixture
def make_asset(session):
    """Create and commit a catalog asset."""

    async def _make(name: str = "Sunset Pack", is_active: bool = True) -> Asset:
        asset = Asset(name=name, is_active=is_active)
        session.add(asset)
        await session.commit()
        return asset

    return _make


@pytest.fixture
def make_plan(session):
    """Create and commit a subscription plan."""

    async def _make(
        name: str = "Pro",
        base_price: str = "19.99",
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
        daily_download_limit: int = 2,
        yearly_discount_percent: int = 0,
        is_active: bool = True,
    ) -> SubscriptionPlan:
        plan = SubscriptionPlan(
            name=name,
            base_price=Decimal(base_price),
            billing_cycle=billing_cycle,
            daily_download_limit=daily_download_limit,
            yearly_discount_percent=yearly_discount_percent,
            features=[f"{daily_download_limit} downloads per day"],
            is_active=is_active,
        )
        session.add(plan)
        await session.commit()
        return plan

    return _make


# =============================================================================
# Credentials
# =============================================================================

@pytest.fixture
def make_token():
    """Sign an identity token the way the identity service does."""

    def _make(user_id: int, role: UserRole = UserRole.USER, expires_in: int = 3600, **claims) -> str:
        settings = get_settings()
        payload = {
            "sub": str(user_id),
            "role": role.value,
            "exp": int(time.time()) + expires_in,
            **claims,
        }
        return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    return _make


@pytest.fixture
def auth_headers(make_token):
    def _headers(user_id: int, role: UserRole = UserRole.USER) -> dict:
        return {"Authorization": f"Bearer {make_token(user_id, role)}"}

    return _headers


@pytest.fixture
def sign_payload():
    """Build a Stripe-Signature header for a raw body."""

    def _sign(payload: bytes, secret: str = None, timestamp: int = None) -> str:
        secret = secret or get_settings().stripe_webhook_secret
        timestamp = timestamp or int(time.time())
        signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
        signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={signature}"

    return _sign


# =============================================================================
# Stripe Fixture
# =============================================================================

@pytest.fixture
def stripe_service():
    """Real StripeService (signature checks included) with outbound calls mocked."""
    from app.infrastructure.payments.stripe_service import StripeService

    service = StripeService()
    service.create_checkout_session = AsyncMock()
    service.get_subscription_period = AsyncMock()
    service.cancel_subscription = AsyncMock()
    return service


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app(session_factory, stripe_service):
    """The FastAPI application bound to the test database."""
    from app.main import app
    from app.infrastructure.db.database import get_session
    from app.infrastructure.payments.stripe_service import get_stripe_service

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_stripe_service] = lambda: stripe_service
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Get async test client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
