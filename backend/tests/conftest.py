"""
Pytest fixtures for test database, client, and authentication.

Creates the schema fresh for every test. SQLite (aiosqlite) is the default
backend; set TEST_DATABASE_URL to a PostgreSQL asyncpg URL to run the same
suite, plus the multi-session race test, against PostgreSQL.
"""

import os

# Must be set before app settings are first read
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.main import app
from app.db.base import Base
from app.db.session import get_db
from app.core.security import create_access_token, hash_password
from app.models.allocation import Allocation
from app.models.bed import Bed
from app.models.room import Room
from app.models.user import User, UserRole
from app.schemas.room import RoomCreate
from app.services import room_service

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///./test_hostel.db")

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

requires_postgres = pytest.mark.skipif(
    not TEST_DATABASE_URL.startswith("postgresql"),
    reason="needs row-level locking from PostgreSQL",
)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield session, then drop tables for isolation."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB dependency with the test session."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _make_user(db: AsyncSession, email: str, name: str, role: str) -> User:
    user = User(
        email=email,
        name=name,
        role=role,
        hashed_password=hash_password("testpassword123"),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def _headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


@pytest_asyncio.fixture
async def staff_user(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "warden@example.com", "Hostel Warden", UserRole.STAFF)


@pytest_asyncio.fixture
async def student(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "asha@example.com", "Asha Rao", UserRole.STUDENT)


@pytest_asyncio.fixture
async def second_student(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "ben@example.com", "Ben Okafor", UserRole.STUDENT)


@pytest_asyncio.fixture
async def third_student(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "chen@example.com", "Chen Li", UserRole.STUDENT)


@pytest_asyncio.fixture
async def staff_headers(staff_user: User) -> dict:
    """Authorization headers for the staff (administrator) account."""
    return _headers(staff_user)


@pytest_asyncio.fixture
async def student_headers(student: User) -> dict:
    return _headers(student)


@pytest_asyncio.fixture
async def second_student_headers(second_student: User) -> dict:
    return _headers(second_student)


@pytest_asyncio.fixture
async def double_room(db_session: AsyncSession) -> tuple[Room, list[Bed]]:
    """Room 101 with capacity 2: beds 1 and 2, both available."""
    room, beds = await room_service.create_room(
        db_session,
        RoomCreate(room_number="101", floor=1, capacity=2, type="double", amenities=["desk", "wifi"]),
    )
    await db_session.commit()
    return room, beds


@pytest_asyncio.fixture
async def single_room(db_session: AsyncSession) -> tuple[Room, list[Bed]]:
    """Room 201 with a single bed."""
    room, beds = await room_service.create_room(
        db_session,
        RoomCreate(room_number="201", floor=2, capacity=1, type="single", price="450.00"),
    )
    await db_session.commit()
    return room, beds


async def fetch_room(db: AsyncSession, room_id: int) -> Room:
    result = await db.execute(
        select(Room).where(Room.id == room_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def fetch_beds(db: AsyncSession, room_id: int) -> list[Bed]:
    result = await db.execute(
        select(Bed)
        .where(Bed.room_id == room_id)
        .order_by(Bed.bed_number)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def fetch_student(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def active_allocations_for_bed(db: AsyncSession, bed_id: int) -> list[Allocation]:
    result = await db.execute(
        select(Allocation)
        .where(Allocation.bed_id == bed_id, Allocation.active.is_(True))
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())
