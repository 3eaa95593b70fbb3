"""Tests for AccountRepository and AuditRecorder queries."""

from datetime import timedelta

import pytest

from account_lifecycle.core.audit import AuditRecorder
from account_lifecycle.models import Account, AccountStatus, HistoryAction
from account_lifecycle.services.repository import AccountRepository
from tests.helpers import NOW


@pytest.fixture
def repository():
    return AccountRepository()


class TestUpdateStatus:
    """Optimistic version-checked writes."""

    @pytest.mark.asyncio
    async def test_write_bumps_version(self, db_session, repository, create_account):
        account = await create_account()

        updated = await repository.update_status(
            db_session, account.id, 1, {"status": AccountStatus.DELETED, "deletion_count": 1}
        )
        await db_session.commit()

        assert updated is True
        current = await repository.get(db_session, account.id)
        assert current.status == AccountStatus.DELETED
        assert current.version == 2

    @pytest.mark.asyncio
    async def test_stale_version_rejected(self, db_session, repository, create_account):
        account = await create_account()
        await repository.update_status(db_session, account.id, 1, {"status": AccountStatus.DELETED})

        # Second writer still believes the row is at version 1
        updated = await repository.update_status(
            db_session, account.id, 1, {"status": AccountStatus.SCHEDULED_FOR_DELETION}
        )
        await db_session.commit()

        assert updated is False
        current = await repository.get(db_session, account.id)
        assert current.status == AccountStatus.DELETED
        assert current.version == 2

    @pytest.mark.asyncio
    async def test_only_status_fields(self, db_session, repository, create_account):
        account = await create_account()

        with pytest.raises(ValueError):
            await repository.update_status(db_session, account.id, 1, {"email": "x@example.com"})


class TestDueQueries:
    """Sweep selection queries."""

    @pytest.mark.asyncio
    async def test_due_for_execution(self, db_session, repository, create_account):
        due = await create_account(
            email="due@example.com",
            status=AccountStatus.SCHEDULED_FOR_DELETION,
            scheduled_deletion_at=NOW - timedelta(minutes=1),
        )
        await create_account(
            email="later@example.com",
            status=AccountStatus.SCHEDULED_FOR_DELETION,
            scheduled_deletion_at=NOW + timedelta(days=1),
        )
        await create_account(email="active@example.com")

        accounts = await repository.list_due_for_execution(db_session, NOW)

        assert [a.id for a in accounts] == [due.id]

    @pytest.mark.asyncio
    async def test_due_for_reminder_window(self, db_session, repository, create_account):
        soon = await create_account(
            email="soon@example.com",
            status=AccountStatus.SCHEDULED_FOR_DELETION,
            scheduled_deletion_at=NOW + timedelta(hours=3),
        )
        await create_account(
            email="far@example.com",
            status=AccountStatus.SCHEDULED_FOR_DELETION,
            scheduled_deletion_at=NOW + timedelta(days=3),
        )

        accounts = await repository.list_due_for_reminder(db_session, NOW, timedelta(hours=24))

        assert [a.id for a in accounts] == [soon.id]

    @pytest.mark.asyncio
    async def test_claim_reminder_once(self, db_session, repository, create_account):
        scheduled_for = NOW + timedelta(hours=3)
        account = await create_account(
            status=AccountStatus.SCHEDULED_FOR_DELETION,
            scheduled_deletion_at=scheduled_for,
        )

        first = await repository.claim_reminder(db_session, account.id, scheduled_for)
        second = await repository.claim_reminder(db_session, account.id, scheduled_for)
        await db_session.commit()

        assert first is True
        assert second is False
        assert await repository.list_due_for_reminder(db_session, NOW, timedelta(hours=24)) == []

    @pytest.mark.asyncio
    async def test_claim_for_changed_schedule_fails(self, db_session, repository, create_account):
        account = await create_account(
            status=AccountStatus.SCHEDULED_FOR_DELETION,
            scheduled_deletion_at=NOW + timedelta(hours=3),
        )

        claimed = await repository.claim_reminder(db_session, account.id, NOW + timedelta(hours=5))

        assert claimed is False


class TestAuditRecorder:
    """History replay and per-actor counts."""

    @pytest.mark.asyncio
    async def test_count_deletions(self, db_session, create_account):
        audit = AuditRecorder()
        account = await create_account(
            history=[
                HistoryAction.DELETED,
                HistoryAction.RESTORED,
                HistoryAction.SCHEDULED,
                HistoryAction.EXECUTED,
            ]
        )

        assert await audit.count_deletions(db_session, account.id) == 2

    @pytest.mark.asyncio
    async def test_append_defaults(self, db_session, create_account):
        audit = AuditRecorder()
        account = await create_account()

        entry = await audit.append(
            db_session, account.id, HistoryAction.DELETED, "Spam account cleanup", "admin-1",
            occurred_at=NOW,
        )
        await db_session.commit()

        assert entry.id is not None
        assert entry.notification_sent is False

        await audit.mark_notification_sent(db_session, entry.id)
        await db_session.commit()
        history = await audit.get_history(db_session, account.id)
        await db_session.refresh(history[0])
        assert history[0].notification_sent is True

    @pytest.mark.asyncio
    async def test_count_actor_operations(self, db_session, create_account):
        audit = AuditRecorder()
        account = await create_account()
        for minutes_ago in (5, 30, 90):
            await audit.append(
                db_session, account.id, HistoryAction.SCHEDULED, "Scheduled cleanup run", "admin-1",
                occurred_at=NOW - timedelta(minutes=minutes_ago),
            )
        await audit.append(
            db_session, account.id, HistoryAction.CANCELLED_SCHEDULE, "Cancelled", "admin-1",
            occurred_at=NOW,
        )
        await db_session.commit()

        count = await audit.count_actor_operations(
            db_session, "admin-1", NOW - timedelta(hours=1),
            (HistoryAction.DELETED, HistoryAction.SCHEDULED, HistoryAction.RESTORED),
        )

        assert count == 2
