"""Test fixtures — a fresh in-memory database per test.

1. Each test gets its own SQLite (aiosqlite) engine with the schema built
   from the ORM metadata, so tests need neither Postgres nor Redis.
2. get_db is overridden to hand that session to the app.
3. get_current_user is overridden to return whichever user the test is
   acting as (admin by default; switch with act_as(user)).
4. Email/SMS go to fake channels that record what was sent.
"""

import json
import os

# Settings are read at import time, so point them at test values first
os.environ["CREATORHUB_DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["CREATORHUB_ENVIRONMENT"] = "test"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from creatorhub.auth.dependencies import get_current_user  # noqa: E402
from creatorhub.channels import Channels, get_channels  # noqa: E402
from creatorhub.db.engine import get_db  # noqa: E402
from creatorhub.db.models import Base, User  # noqa: E402
from creatorhub.main import app  # noqa: E402
from creatorhub.realtime.connections import registry  # noqa: E402


# ─── Fakes ─────────────────────────────────────────────────


class FakeEmailChannel:
    name = "email"
    configured = True

    def __init__(self, ok: bool = True, error: str | None = None):
        self.ok = ok
        self.error = error
        self.sent: list[dict] = []

    async def send(self, to, subject, text, html=None):
        self.sent.append({"to": to, "subject": subject, "text": text, "html": html})
        return self.ok, self.error


class FakeSmsChannel:
    name = "sms"
    configured = True

    def __init__(self, ok: bool = True, error: str | None = None):
        self.ok = ok
        self.error = error
        self.sent: list[dict] = []

    async def send(self, to, body):
        self.sent.append({"to": to, "body": body})
        return self.ok, self.error


class FakeSocket:
    """Stands in for a WebSocket in the connection registry."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[str] = []

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(text)

    @property
    def events(self) -> list[dict]:
        return [json.loads(t) for t in self.sent]

    def of_type(self, event_type: str) -> list[dict]:
        return [e for e in self.events if e["type"] == event_type]


class RecordingPipeline:
    def __init__(self, sink: list):
        self.sink = sink

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def publish(self, channel, payload):
        self.sink.append((channel, json.loads(payload)))

    async def execute(self):
        return [1] * len(self.sink)


class FakeRedis:
    """In-memory stand-in for the pub/sub publisher and presence hash."""

    def __init__(self):
        self.published: list = []
        self.hashes: dict[str, dict[str, int]] = {}

    def pipeline(self, transaction=True):
        return RecordingPipeline(self.published)

    async def hincrby(self, key, field, amount):
        h = self.hashes.setdefault(key, {})
        h[field] = h.get(field, 0) + amount
        return h[field]

    async def hdel(self, key, field):
        return int(self.hashes.get(key, {}).pop(field, None) is not None)

    async def hget(self, key, field):
        value = self.hashes.get(key, {}).get(field)
        return None if value is None else str(value)

    async def aclose(self):
        pass


# ─── Database ──────────────────────────────────────────────


@pytest_asyncio.fixture()
async def db_session():
    """Per-test session on a brand-new in-memory database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session = AsyncSession(engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest.fixture(autouse=True)
def clean_registry():
    registry.clear()
    yield
    registry.clear()


async def make_user(db: AsyncSession, username: str, role: str = "client", **fields) -> User:
    user = User(
        username=username,
        email=fields.pop("email", f"{username}@example.com"),
        full_name=fields.pop("full_name", username.title()),
        role=role,
        **fields,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture()
async def admin(db_session):
    return await make_user(db_session, "agency", role="admin", full_name="Agency Admin")


@pytest_asyncio.fixture()
async def creator(db_session):
    return await make_user(
        db_session, "mia", full_name="Mia Stone", phone="+15551230001"
    )


@pytest_asyncio.fixture()
async def other_creator(db_session):
    return await make_user(db_session, "leo", full_name="Leo Park")


# ─── Channels ──────────────────────────────────────────────


@pytest.fixture()
def channels():
    return Channels(email=FakeEmailChannel(), sms=FakeSmsChannel())


# ─── HTTP clients ──────────────────────────────────────────


@pytest.fixture()
def acting():
    """Holds the user the authenticated client is acting as."""
    return {}


@pytest.fixture()
def act_as(acting):
    def _act_as(user: User) -> None:
        acting["user"] = user
    return _act_as


@pytest_asyncio.fixture()
async def client(db_session, channels, admin, acting):
    """HTTP client with get_db, auth and channels overridden.

    Acts as the admin until the test calls act_as(other_user).
    """
    acting.setdefault("user", admin)

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: acting["user"]
    app.dependency_overrides[get_channels] = lambda: channels

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def unauthenticated_client(db_session, channels):
    """HTTP client WITHOUT the auth override — for real JWT flows."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_channels] = lambda: channels

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
