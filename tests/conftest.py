"""
Pytest fixtures for test database, client, and authentication.

Each test gets its own SQLite database file, so services can commit and
roll back freely. Service calls run in a fresh session per call (as one
request would), via the `run` fixture.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./campusfest_test.db"
os.environ["REDIS_ENABLED"] = "false"
os.environ["ADMISSION_STRATEGY"] = "optimistic"
os.environ["ENVIRONMENT"] = "test"

from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from campusfest.main import app
from campusfest.db.base import Base
from campusfest.db.session import get_db
from campusfest.core.security import create_access_token
from campusfest.models.enums import EventStatus, EventType, ParticipantType, UserRole
from campusfest.models.event import Event, MerchandiseItem
from campusfest.models.user import User
from campusfest.services.notifier import Notification, NotificationKind, Notifier, get_notifier


class RecordingNotifier(Notifier):
    """Keeps every notification instead of delivering it."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def notify(self, email: str, kind: NotificationKind, context: dict[str, Any]) -> None:
        self.sent.append(Notification(email=email, kind=kind, context=context))

    def of_kind(self, kind: NotificationKind) -> list[Notification]:
        return [n for n in self.sent if n.kind == kind]


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Fresh database file per test."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'campusfest.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for fixtures and assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def run(session_factory):
    """Call a service function in its own session: `await run(fn, *args, **kwargs)`."""

    async def _run(fn, *args, **kwargs):
        async with session_factory() as session:
            return await fn(session, *args, **kwargs)

    return _run


@pytest.fixture
def fetch(session_factory):
    """Load a committed row in a fresh session."""

    async def _fetch(model, ident):
        async with session_factory() as session:
            return await session.get(model, ident)

    return _fetch


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, notifier: RecordingNotifier) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with one test-database session per request."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: AsyncSession):
    async def _make_user(
        email: str,
        role: UserRole = UserRole.PARTICIPANT,
        participant_type: ParticipantType = ParticipantType.EXTERNAL,
    ) -> User:
        user = User(
            email=email,
            full_name=email.split("@")[0].title(),
            role=role.value,
            participant_type=participant_type.value,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make_user


@pytest_asyncio.fixture
async def organizer(make_user) -> User:
    return await make_user("organizer@fest.edu", role=UserRole.ORGANIZER)


@pytest_asyncio.fixture
async def participants(make_user) -> list[User]:
    """Five participants; the first is internal, the rest external."""
    users = [await make_user("user1@fest.edu", participant_type=ParticipantType.INTERNAL)]
    for n in range(2, 6):
        users.append(await make_user(f"user{n}@example.com"))
    return users


@pytest.fixture
def headers_for():
    """Authorization headers with a Bearer token for the given user."""

    def _headers_for(user: User) -> dict:
        token = create_access_token(data={"sub": str(user.id), "role": user.role})
        return {"Authorization": f"Bearer {token}"}

    return _headers_for


@pytest.fixture
def organizer_headers(organizer: User, headers_for) -> dict:
    return headers_for(organizer)


@pytest.fixture
def make_event(db_session: AsyncSession, organizer: User):
    """Published event opening next week unless overridden."""

    async def _make_event(**overrides) -> Event:
        now = datetime.now(timezone.utc)
        values = dict(
            name="Hackathon",
            description="24h build sprint",
            event_type=EventType.STANDARD.value,
            status=EventStatus.PUBLISHED.value,
            start_date=now + timedelta(days=7),
            end_date=now + timedelta(days=8),
            registration_deadline=now + timedelta(days=6),
            registration_limit=0,
            registration_count=0,
            registration_fee=Decimal("0"),
            purchase_limit_per_user=1,
            custom_form=[],
            organizer_id=organizer.id,
            items=[],
        )
        values.update(overrides)
        event = Event(**values)
        db_session.add(event)
        await db_session.commit()
        await db_session.refresh(event)
        return event

    return _make_event


@pytest_asyncio.fixture
async def small_event(make_event) -> Event:
    """Standard event with two slots."""
    return await make_event(name="Robotics Workshop", registration_limit=2)


@pytest_asyncio.fixture
async def merch_event(make_event) -> Event:
    """Merchandise event: Hoodie/L/Black stock 2, one per participant."""
    return await make_event(
        name="Fest Merch",
        event_type=EventType.MERCHANDISE.value,
        purchase_limit_per_user=1,
        items=[
            MerchandiseItem(name="Hoodie", size="L", color="Black", stock=2, price=Decimal("25.00")),
            MerchandiseItem(name="Hoodie", size="M", color="Black", stock=5, price=Decimal("25.00")),
            MerchandiseItem(name="Mug", stock=10, price=Decimal("8.50")),
        ],
    )
