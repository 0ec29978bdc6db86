"""
Pytest fixtures for test database, client, clock and seeded accounts.

Each test gets freshly created tables. SQLite (aiosqlite) is the default so
the suite runs anywhere; point TEST_DATABASE_URL at a PostgreSQL database to
exercise the real row locks.
"""

import os
import tempfile

# Must be set before tutorbook reads its settings
TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'tutorbook_test.db')}",
)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["REDIS_ENABLED"] = "false"
os.environ["LOCK_BACKEND"] = "local"
os.environ["ENVIRONMENT"] = "test"

from datetime import date, datetime, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from tutorbook.main import app
from tutorbook.core.clock import FixedClock, get_clock
from tutorbook.core.security import create_access_token
from tutorbook.db.base import Base
from tutorbook.db.session import get_db
from tutorbook.models import Role, Student, Tutor, TutorShift, TicketGrant, User
from tutorbook.services.identity import CallerIdentity, resolve_caller
from tutorbook.services.interfaces.local_lock import LocalResourceLock
from tutorbook.services.strategy_factory import get_resource_lock

# 2026-11-02 09:00 in Asia/Tokyo
NOW = datetime(2026, 11, 2, 0, 0, tzinfo=timezone.utc)
TODAY = date(2026, 11, 2)
TOMORROW = date(2026, 11, 3)
YESTERDAY = date(2026, 11, 1)
FIRST_SLOT = "16:00-17:30"
SECOND_SLOT = "18:00-19:30"


@pytest_asyncio.fixture(scope="function")
async def engine():
    """Create tables, yield the engine, then drop tables for isolation."""
    test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def locks() -> LocalResourceLock:
    return LocalResourceLock()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, clock, locks) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with a session per request, pinned clock and local locks."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_resource_lock] = lambda: locks

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def headers_for(user: User) -> dict:
    """Authorization headers with a Bearer token for the user."""
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


async def caller_for(db: AsyncSession, user: User) -> CallerIdentity:
    return await resolve_caller(db, user.id)


async def grant_tickets(
    db: AsyncSession,
    quantity: int,
    student_id: Optional[int] = None,
    user_id: Optional[int] = None,
) -> None:
    db.add(TicketGrant(student_id=student_id, user_id=user_id, quantity=quantity, description="seed"))
    await db.commit()


async def _add(db: AsyncSession, obj):
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    return obj


@pytest_asyncio.fixture
async def parent(db_session: AsyncSession) -> User:
    return await _add(db_session, User(email="parent@example.com", role=Role.PARENT.value, display_name="Yamada"))


@pytest_asyncio.fixture
async def student(db_session: AsyncSession, parent: User) -> Student:
    """Taro, owned by `parent`."""
    return await _add(db_session, Student(user_id=parent.id, first_name="Taro", last_name="Yamada"))


@pytest_asyncio.fixture
async def other_parent(db_session: AsyncSession) -> User:
    return await _add(db_session, User(email="other@example.com", role=Role.PARENT.value))


@pytest_asyncio.fixture
async def other_student(db_session: AsyncSession, other_parent: User) -> Student:
    return await _add(db_session, Student(user_id=other_parent.id, first_name="Hanako", last_name="Suzuki"))


@pytest_asyncio.fixture
async def student_user(db_session: AsyncSession, student: Student) -> User:
    """Taro's own login."""
    return await _add(
        db_session, User(email="taro@example.com", role=Role.STUDENT.value, student_id=student.id)
    )


@pytest_asyncio.fixture
async def tutor_user(db_session: AsyncSession) -> User:
    return await _add(db_session, User(email="tutor@example.com", role=Role.TUTOR.value))


@pytest_asyncio.fixture
async def tutor(db_session: AsyncSession, tutor_user: User) -> Tutor:
    return await _add(
        db_session,
        Tutor(user_id=tutor_user.id, first_name="Ichiro", last_name="Sato", specialization="Math, Physics"),
    )


@pytest_asyncio.fixture
async def other_tutor_user(db_session: AsyncSession) -> User:
    return await _add(db_session, User(email="tutor2@example.com", role=Role.TUTOR.value))


@pytest_asyncio.fixture
async def other_tutor(db_session: AsyncSession, other_tutor_user: User) -> Tutor:
    return await _add(
        db_session,
        Tutor(user_id=other_tutor_user.id, first_name="Jiro", last_name="Tanaka", specialization="English"),
    )


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await _add(db_session, User(email="admin@example.com", role=Role.ADMIN.value))


@pytest_asyncio.fixture
async def shift(db_session: AsyncSession, tutor: Tutor) -> TutorShift:
    """Tutor's first band tomorrow, open."""
    return await _add(db_session, TutorShift(tutor_id=tutor.id, date=TOMORROW, time_slot=FIRST_SLOT))


@pytest_asyncio.fixture
async def second_shift(db_session: AsyncSession, tutor: Tutor) -> TutorShift:
    return await _add(db_session, TutorShift(tutor_id=tutor.id, date=TOMORROW, time_slot=SECOND_SLOT))


def booking_payload(shift: TutorShift, student_id: Optional[int] = None, subject: str = "Math") -> dict:
    payload = {
        "tutorId": shift.tutor_id,
        "shiftId": shift.id,
        "date": shift.date.isoformat(),
        "timeSlot": shift.time_slot,
        "subject": subject,
    }
    if student_id is not None:
        payload["studentId"] = student_id
    return payload
