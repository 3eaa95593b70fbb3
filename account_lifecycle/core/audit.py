"""Append-only deletion history.

AuditRecorder never commits: appends run inside the caller's transaction so
a history row exists exactly when its status change does.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import select, func, update

from account_lifecycle.models import (
    DeletionHistoryEntry,
    HistoryAction,
    DELETION_ACTIONS,
    utcnow,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class AuditRecorder:
    """
    Writes and reads deletion_history rows.

    Usage:
        audit = AuditRecorder()
        async with session.begin():
            ...status write...
            await audit.append(session, account_id, HistoryAction.DELETED, reason, actor_id)
    """

    async def append(
        self,
        db: "AsyncSession",
        account_id: str,
        action: HistoryAction,
        reason: str,
        actor_id: Optional[str],
        occurred_at: Optional[datetime] = None,
        scheduled_for: Optional[datetime] = None,
        restoration_sequence: Optional[int] = None,
    ) -> DeletionHistoryEntry:
        """Add a history row to the current transaction and flush to get its ID."""
        entry = DeletionHistoryEntry(
            account_id=account_id,
            action=action,
            reason=reason,
            actor_id=actor_id,
            occurred_at=occurred_at or utcnow(),
            scheduled_for=scheduled_for,
            notification_sent=False,
            restoration_sequence=restoration_sequence,
        )
        db.add(entry)
        await db.flush()
        logger.debug(f"History {entry.id}: account {account_id} {action.value} by {actor_id}")
        return entry

    async def count_deletions(self, db: "AsyncSession", account_id: str) -> int:
        """Count completed deletions (immediate + executed) by replaying history."""
        result = await db.execute(
            select(func.count())
            .select_from(DeletionHistoryEntry)
            .where(DeletionHistoryEntry.account_id == account_id)
            .where(DeletionHistoryEntry.action.in_(DELETION_ACTIONS))
        )
        return result.scalar() or 0

    async def count_actor_operations(
        self,
        db: "AsyncSession",
        actor_id: str,
        since: datetime,
        actions: tuple[HistoryAction, ...],
    ) -> int:
        """Count history rows written by an actor since a point in time."""
        result = await db.execute(
            select(func.count())
            .select_from(DeletionHistoryEntry)
            .where(DeletionHistoryEntry.actor_id == actor_id)
            .where(DeletionHistoryEntry.occurred_at >= since)
            .where(DeletionHistoryEntry.action.in_(actions))
        )
        return result.scalar() or 0

    async def get_history(self, db: "AsyncSession", account_id: str) -> list[DeletionHistoryEntry]:
        """All history for an account, newest first."""
        result = await db.execute(
            select(DeletionHistoryEntry)
            .where(DeletionHistoryEntry.account_id == account_id)
            .order_by(DeletionHistoryEntry.occurred_at.desc(), DeletionHistoryEntry.id.desc())
        )
        return list(result.scalars().all())

    async def latest_entry(
        self,
        db: "AsyncSession",
        account_id: str,
        action: HistoryAction,
    ) -> Optional[DeletionHistoryEntry]:
        """Most recent history row of a given action for an account."""
        result = await db.execute(
            select(DeletionHistoryEntry)
            .where(DeletionHistoryEntry.account_id == account_id)
            .where(DeletionHistoryEntry.action == action)
            .order_by(DeletionHistoryEntry.occurred_at.desc(), DeletionHistoryEntry.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def mark_notification_sent(self, db: "AsyncSession", entry_id: int) -> None:
        """Flag that the email for this transition was handed to the provider."""
        await db.execute(
            update(DeletionHistoryEntry)
            .where(DeletionHistoryEntry.id == entry_id)
            .values(notification_sent=True)
            .execution_options(synchronize_session=False)
        )
