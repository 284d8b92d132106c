import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["TZ"] = "America/Toronto"
os.environ["ENV"] = "test"
os.environ.setdefault("CRON_SECRET", "test-cron-secret")

from datetime import date, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import sniperzone.models  # noqa: F401
from sniperzone.core.database import Base, get_db
from sniperzone.models import (
    CreditPurchase,
    ParentCredits,
    ProgramType,
    Registration,
    RegistrationStatus,
    UnpairedSemiPrivate,
    WaitlistStatus,
)
from sniperzone.services.slot_catalog import group_time_for_category
from sniperzone.utils.timezone import now_utc


@pytest.fixture()
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def client(session_factory):
    from sniperzone.main import app

    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
def make_registration(db):
    counter = {"n": 0}

    async def _make(
        uid: str = "parent-1",
        program: ProgramType = ProgramType.GROUP,
        category: str = "M11",
        days=("monday",),
        time_slot=None,
        frequency: str = "1x",
        payment_status: str = "succeeded",
        status: RegistrationStatus = RegistrationStatus.ACTIVE,
        name=None,
    ) -> Registration:
        counter["n"] += 1
        if time_slot is None and program == ProgramType.GROUP:
            time_slot = group_time_for_category(category)
        registration = Registration(
            firebase_uid=uid,
            player_name=name or f"Player {counter['n']}",
            parent_name=f"Parent {counter['n']}",
            parent_email=f"parent{counter['n']}@example.com",
            program_type=program,
            age_category=category,
            frequency=frequency,
            selected_days=list(days),
            time_slot=time_slot,
            payment_status=payment_status,
            status=status,
        )
        db.add(registration)
        await db.commit()
        await db.refresh(registration)
        return registration

    return _make


@pytest.fixture()
def add_credits(db):
    async def _add(uid: str, credits: int) -> CreditPurchase:
        totals = ParentCredits(firebase_uid=uid, total_credits=credits)
        purchase = CreditPurchase(
            firebase_uid=uid,
            package_type="10_pack",
            credits_purchased=credits,
            credits_remaining=credits,
            expires_at=now_utc() + timedelta(days=365),
        )
        db.add_all([totals, purchase])
        await db.commit()
        await db.refresh(purchase)
        return purchase

    return _add


@pytest.fixture()
def add_waiting(db):
    async def _add(registration: Registration, day: str, time_slot: str, since: date) -> UnpairedSemiPrivate:
        entry = UnpairedSemiPrivate(
            registration_id=registration.id,
            player_name=registration.player_name,
            age_category=registration.age_category,
            preferred_days=[day],
            preferred_time_slots=[time_slot],
            parent_email=registration.parent_email,
            parent_name=registration.parent_name,
            status=WaitlistStatus.WAITING,
            unpaired_since_date=since,
        )
        db.add(entry)
        await db.commit()
        await db.refresh(entry)
        return entry

    return _add
