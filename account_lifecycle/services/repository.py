"""Persistence gateway for account rows.

All writes to accounts go through here. Status writes are optimistic:
UPDATE ... WHERE id = :id AND version = :expected, so two concurrent
transitions on one account can never both succeed.
"""

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import select, update, or_

from account_lifecycle.models import Account, AccountStatus, utcnow

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Columns a status write is allowed to touch
STATUS_FIELDS = frozenset({
    "status",
    "deletion_count",
    "scheduled_deletion_at",
    "reminder_sent_for",
    "last_deleted_at",
    "last_restored_at",
})


class AccountRepository:
    """
    Reads and writes account rows within the caller's session.

    Usage:
        repo = AccountRepository()
        async with session.begin():
            account = await repo.get(session, account_id, for_update=True)
            ok = await repo.update_status(session, account.id, account.version, {...})
    """

    async def get(
        self,
        db: "AsyncSession",
        account_id: str,
        for_update: bool = False,
    ) -> Optional[Account]:
        """
        Get account by ID.

        for_update takes a row lock on backends that support it (ignored by SQLite);
        the version check in update_status is what guarantees a single winner.
        """
        stmt = select(Account).where(Account.id == account_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def update_status(
        self,
        db: "AsyncSession",
        account_id: str,
        expected_version: int,
        new_state: dict[str, Any],
    ) -> bool:
        """
        Apply a status write if the row is still at expected_version.

        Args:
            db: Session with an open transaction
            account_id: Account to update
            expected_version: Version read before deciding on the transition
            new_state: Column values to write (subset of STATUS_FIELDS)

        Returns:
            True if the row was updated, False on a version conflict.
        """
        unknown = set(new_state) - STATUS_FIELDS
        if unknown:
            raise ValueError(f"Not a status field: {', '.join(sorted(unknown))}")

        result = await db.execute(
            update(Account)
            .where(Account.id == account_id)
            .where(Account.version == expected_version)
            .values(**new_state, version=expected_version + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            logger.warning(
                f"Version conflict on account {account_id} (expected version {expected_version})"
            )
            return False
        return True

    async def list_due_for_execution(self, db: "AsyncSession", now: datetime) -> list[Account]:
        """Accounts whose scheduled deletion date has passed."""
        result = await db.execute(
            select(Account)
            .where(Account.status == AccountStatus.SCHEDULED_FOR_DELETION)
            .where(Account.scheduled_deletion_at <= now)
            .order_by(Account.scheduled_deletion_at)
        )
        return list(result.scalars().all())

    async def list_due_for_reminder(
        self,
        db: "AsyncSession",
        now: datetime,
        window: timedelta,
    ) -> list[Account]:
        """Scheduled accounts entering the reminder window without a reminder for that date."""
        result = await db.execute(
            select(Account)
            .where(Account.status == AccountStatus.SCHEDULED_FOR_DELETION)
            .where(Account.scheduled_deletion_at > now)
            .where(Account.scheduled_deletion_at <= now + window)
            .where(
                or_(
                    Account.reminder_sent_for.is_(None),
                    Account.reminder_sent_for != Account.scheduled_deletion_at,
                )
            )
            .order_by(Account.scheduled_deletion_at)
        )
        return list(result.scalars().all())

    async def claim_reminder(
        self,
        db: "AsyncSession",
        account_id: str,
        scheduled_for: datetime,
    ) -> bool:
        """
        Atomically mark the reminder for this schedule as taken.

        Only one caller can win per (account, scheduled date); a cancelled or
        rescheduled account no longer matches and is not claimed.
        """
        result = await db.execute(
            update(Account)
            .where(Account.id == account_id)
            .where(Account.status == AccountStatus.SCHEDULED_FOR_DELETION)
            .where(Account.scheduled_deletion_at == scheduled_for)
            .where(
                or_(
                    Account.reminder_sent_for.is_(None),
                    Account.reminder_sent_for != scheduled_for,
                )
            )
            .values(reminder_sent_for=scheduled_for)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
