"""SQLAlchemy ORM models for account lifecycle tracking."""

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Integer, DateTime, Enum, ForeignKey, Text, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from account_lifecycle.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class AccountStatus(str, enum.Enum):
    """
    States an account can be in.

    ACTIVE -> SCHEDULED_FOR_DELETION -> DELETED -> ACTIVE (restored)
    ACTIVE -> DELETED (immediate)
    """

    ACTIVE = "active"
    SCHEDULED_FOR_DELETION = "scheduled_for_deletion"
    DELETED = "deleted"


class HistoryAction(str, enum.Enum):
    """What happened in a single lifecycle transition."""

    DELETED = "deleted"  # Immediate deletion by an admin
    SCHEDULED = "scheduled"  # Deletion deferred to a future date
    CANCELLED_SCHEDULE = "cancelled_schedule"  # Scheduled deletion called off
    RESTORED = "restored"  # Deleted account reinstated
    EXECUTED = "executed"  # Scheduled deletion carried out by the sweep


# Actions that count as a completed deletion
DELETION_ACTIONS = (HistoryAction.DELETED, HistoryAction.EXECUTED)


class Account(Base):
    """
    A user account as seen by the back office.

    deletion_count is a cache; the authoritative count is replayed from
    deletion_history. version is bumped on every status write and used for
    optimistic concurrency checks.
    """

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # Recipient data for notifications
    email: Mapped[str] = mapped_column(String(320))
    full_name: Mapped[str] = mapped_column(String(200))

    status: Mapped[AccountStatus] = mapped_column(
        Enum(AccountStatus), default=AccountStatus.ACTIVE, index=True
    )
    deletion_count: Mapped[int] = mapped_column(Integer, default=0)

    # Set iff status == SCHEDULED_FOR_DELETION
    scheduled_deletion_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True, index=True
    )
    # Equals scheduled_deletion_at once the reminder for that schedule was claimed
    reminder_sent_for: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    last_deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_restored_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, default=1)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class DeletionHistoryEntry(Base):
    """
    Append-only audit row, one per lifecycle transition.

    Rows are never deleted. notification_sent is the only field written
    after creation (once the email hand-off succeeded).
    """

    __tablename__ = "deletion_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[str] = mapped_column(ForeignKey("accounts.id"), index=True)

    action: Mapped[HistoryAction] = mapped_column(Enum(HistoryAction), index=True)
    reason: Mapped[str] = mapped_column(Text)
    actor_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)

    occurred_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    scheduled_for: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    notification_sent: Mapped[bool] = mapped_column(Boolean, default=False)

    # Deletion count at restoration time (restored rows only)
    restoration_sequence: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
