"""
Shared fixtures: in-memory SQLite database, API client, users and mocked email
"""

import uuid
from typing import List, Dict, Any

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.main import app
from app.models import User
from app.services import bulk_pricing as bulk_pricing_module
from app.services import stripe_webhook as stripe_webhook_module
from app.utils.database import Base, get_db
from app.utils.email_brevo import email_service
from app.utils.security import create_access_token
from app.utils.seed import seed_bulk_tiers


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine, monkeypatch):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    # Background work opens its own sessions
    monkeypatch.setattr(bulk_pricing_module, "get_async_session", factory)
    monkeypatch.setattr(stripe_webhook_module, "get_async_session", factory)
    return factory


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded_db(db):
    await seed_bulk_tiers(db)
    return db


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def make_user(db):
    async def _make(tier: str = "basic", **kwargs) -> User:
        user = User(
            email=kwargs.pop("email", f"student-{uuid.uuid4().hex[:8]}@example.com"),
            name=kwargs.pop("name", "Test Student"),
            subscription_tier=tier,
            **kwargs,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}
    return _headers


@pytest.fixture
def sent_emails(monkeypatch) -> List[Dict[str, Any]]:
    """Replace Brevo delivery with an in-memory outbox"""
    outbox: List[Dict[str, Any]] = []

    def recorder(kind: str):
        async def _send(*args, **kwargs):
            outbox.append({"kind": kind, "args": args, "kwargs": kwargs})
            return True
        return _send

    monkeypatch.setattr(email_service, "send_referral_invitation", recorder("referral_invitation"))
    monkeypatch.setattr(email_service, "send_bulk_enrollment_received", recorder("bulk_received"))
    monkeypatch.setattr(email_service, "send_enrollment_invite", recorder("enrollment_invite"))
    return outbox
