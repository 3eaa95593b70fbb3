"""Test fixtures for account-lifecycle tests."""

from datetime import datetime, timedelta
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from account_lifecycle.config import LifecycleConfig
from account_lifecycle.core.audit import AuditRecorder
from account_lifecycle.core.broadcaster import Broadcaster
from account_lifecycle.database import Base
from account_lifecycle.models import Account, AccountStatus, DeletionHistoryEntry, HistoryAction
from account_lifecycle.services.deletion_scheduler import DeletionScheduler
from account_lifecycle.services.lifecycle_engine import LifecycleEngine
from account_lifecycle.services.notifications import NotificationDispatcher
from tests.helpers import NOW, FakeClock
from tests.mocks import MockEmailClient


async def _create_schema(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest_asyncio.fixture
async def session_factory():
    """
    In-memory SQLite async session factory for tests.

    Creates a fresh database for each test, with all tables.
    Uses StaticPool to keep the same connection across sessions
    (required for in-memory SQLite with async), so sessions must be used
    one at a time.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await _create_schema(engine)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """
    File-backed SQLite session factory with a real connection pool.

    Used by race tests, where two transactions must hold separate connections.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'accounts.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    await _create_schema(engine)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Single session on the in-memory database."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def lifecycle_config():
    return LifecycleConfig(
        max_restorations=3,
        max_schedule_horizon=timedelta(days=30),
        reminder_lead_time=timedelta(hours=24),
        sweep_interval=0.05,
        sweep_max_retries=2,
        sweep_retry_backoff=0.01,
        operation_timeout=5.0,
        admin_rate_limit_per_hour=50,
    )


@pytest.fixture
def mock_email():
    return MockEmailClient()


@pytest.fixture
def audit():
    return AuditRecorder()


@pytest.fixture
def dispatcher(mock_email, session_factory, audit):
    """Dispatcher whose worker is not started; use deliver_pending() to flush it."""
    return NotificationDispatcher(
        mock_email,
        session_factory,
        audit,
        timezone_name="UTC",
        contact_email="support@example.com",
    )


@pytest.fixture
def broadcaster():
    return Broadcaster()


@pytest.fixture
def engine(session_factory, lifecycle_config, audit, dispatcher, broadcaster, clock):
    return LifecycleEngine(
        session_factory,
        lifecycle_config,
        audit=audit,
        dispatcher=dispatcher,
        broadcaster=broadcaster,
        clock=clock,
    )


@pytest.fixture
def scheduler(engine, session_factory, lifecycle_config, dispatcher, clock):
    return DeletionScheduler(
        engine,
        session_factory,
        lifecycle_config,
        dispatcher=dispatcher,
        clock=clock,
    )


@pytest.fixture
def create_account(session_factory):
    """
    Insert a committed account.

    Usage:
        account = await create_account(status=AccountStatus.DELETED, deletion_count=1)
    """

    async def _create(
        email: str = "jane@example.com",
        full_name: str = "Jane Doe",
        status: AccountStatus = AccountStatus.ACTIVE,
        deletion_count: int = 0,
        scheduled_deletion_at: Optional[datetime] = None,
        history: Optional[list[HistoryAction]] = None,
    ) -> Account:
        async with session_factory() as db:
            account = Account(
                email=email,
                full_name=full_name,
                status=status,
                deletion_count=deletion_count,
                scheduled_deletion_at=scheduled_deletion_at,
                created_at=NOW - timedelta(days=365),
                updated_at=NOW - timedelta(days=365),
            )
            db.add(account)
            await db.flush()

            # Seed prior transitions, two days back so they are outside rate-limit windows
            for action in history or []:
                db.add(
                    DeletionHistoryEntry(
                        account_id=account.id,
                        action=action,
                        reason="Seeded history entry",
                        actor_id="admin-seed",
                        occurred_at=NOW - timedelta(days=2),
                    )
                )
            await db.commit()
            return account

    return _create
