import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from campus_points.app import create_app  # noqa: E402
from campus_points.db.session import get_session  # noqa: E402
from campus_points.domain.roles import Actor, Role  # noqa: E402
from campus_points.models import (  # noqa: E402
    Base,
    Event,
    EventGuest,
    EventOrganizer,
    Promotion,
    PromotionKind,
    User,
)
from campus_points.observability.ledger import get_ledger_store  # noqa: E402


def utc(hours: float = 0) -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=hours)


class LedgerSeeder:
    """Commits fixture rows in their own sessions so engine calls start clean."""

    def __init__(self, factory: async_sessionmaker) -> None:
        self._factory = factory

    async def _persist(self, record):
        async with self._factory() as session:
            session.add(record)
            await session.commit()
        return record

    async def user(
        self,
        role: Role = Role.REGULAR,
        *,
        points: int = 0,
        verified: bool = True,
        suspicious: bool = False,
    ) -> User:
        suffix = uuid4().hex[:8]
        return await self._persist(
            User(
                utorid=f"user{suffix}",
                name=f"User {suffix}",
                email=f"{suffix}@mail.utoronto.ca",
                role=role.label,
                points=points,
                verified=verified,
                suspicious=suspicious,
            )
        )

    async def promotion(
        self,
        kind: PromotionKind = PromotionKind.AUTOMATIC,
        *,
        rate: str | None = None,
        points: int = 0,
        min_spending: str | None = None,
        starts_in_hours: float = -1,
        ends_in_hours: float = 24,
    ) -> Promotion:
        return await self._persist(
            Promotion(
                name=f"Promo {uuid4().hex[:6]}",
                kind=kind,
                start_time=utc(starts_in_hours),
                end_time=utc(ends_in_hours),
                rate=Decimal(rate) if rate is not None else None,
                points=points,
                min_spending=Decimal(min_spending) if min_spending is not None else None,
            )
        )

    async def event(
        self,
        *,
        total_points: int = 100,
        points_awarded: int = 0,
        capacity: int | None = None,
        ends_in_hours: float = 4,
    ) -> Event:
        return await self._persist(
            Event(
                name=f"Event {uuid4().hex[:6]}",
                start_time=utc(-1),
                end_time=utc(ends_in_hours),
                capacity=capacity,
                total_points=total_points,
                points_awarded=points_awarded,
            )
        )

    async def guest(self, event: Event, user: User) -> EventGuest:
        return await self._persist(EventGuest(event_id=event.id, user_id=user.id))

    async def organizer(self, event: Event, user: User) -> EventOrganizer:
        return await self._persist(EventOrganizer(event_id=event.id, user_id=user.id))

    async def fetch(self, model, record_id):
        async with self._factory() as session:
            return await session.get(model, record_id)

    async def balance(self, user: User) -> int:
        fresh = await self.fetch(User, user.id)
        return fresh.points


def actor_for(user: User) -> Actor:
    return Actor(user_id=user.id, role=Role.parse(user.role))


@pytest.fixture(autouse=True)
def reset_ledger_store():
    store = get_ledger_store()
    store.reset()
    yield store
    store.reset()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def seed(session_factory) -> LedgerSeeder:
    return LedgerSeeder(session_factory)


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()
