"""
Account lifecycle engine.

Owns every status transition of an account:
1. Validates input (reason length, schedule horizon, self-deletion)
2. Reads the account and checks the precondition for the transition
3. Writes the new status (optimistic version check) and the history row
   in one transaction
4. After commit: broadcasts an SSE update and queues the email notification

Notification and broadcast failures never undo or fail a committed transition.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from account_lifecycle.config import LifecycleConfig
from account_lifecycle.core.audit import AuditRecorder
from account_lifecycle.core.errors import (
    AccountNotFoundError,
    AlreadyDeletedError,
    ConcurrentModificationError,
    InfrastructureError,
    InvalidReasonError,
    InvalidScheduleError,
    NoScheduleToCancelError,
    NotActiveError,
    NotDeletedError,
    NotDueError,
    NotScheduledError,
    OperationTimeoutError,
    RateLimitExceededError,
    RestorationLimitExceededError,
    SelfDeletionError,
    StateConflictError,
)
from account_lifecycle.core.restoration_policy import RestorationEligibility, RestorationPolicy
from account_lifecycle.core.state_machine import ACTION_TARGETS, can_transition
from account_lifecycle.models import (
    Account,
    AccountStatus,
    DeletionHistoryEntry,
    HistoryAction,
    to_naive_utc,
    utcnow,
)
from account_lifecycle.services.notifications import NotificationDispatcher, NotificationKind
from account_lifecycle.services.repository import AccountRepository

logger = logging.getLogger(__name__)

# Reason length bounds (after trimming whitespace)
DELETION_REASON_MIN = 10
DELETION_REASON_MAX = 500
RESTORATION_REASON_MIN = 5
RESTORATION_REASON_MAX = 300

# Actor recorded on history rows written by the sweep loop
SCHEDULER_ACTOR_ID = "system:deletion-scheduler"

# Reason used when an executed deletion has no scheduling row to copy from
DEFAULT_EXECUTION_REASON = "Scheduled deletion executed"
CANCEL_REASON = "Scheduled deletion cancelled"

# Operations that count against the per-admin hourly rate limit
RATE_LIMITED_ACTIONS = (
    HistoryAction.DELETED,
    HistoryAction.SCHEDULED,
    HistoryAction.RESTORED,
)
RATE_LIMIT_WINDOW = timedelta(hours=1)


@dataclass(frozen=True)
class Actor:
    """Who is performing a lifecycle operation."""

    user_id: str
    role: Optional[str] = None


SCHEDULER_ACTOR = Actor(user_id=SCHEDULER_ACTOR_ID, role="system")


class _VersionConflict(Exception):
    """Status write lost the race against another transition."""


# (new account state, extra history fields)
Plan = tuple[dict[str, Any], dict[str, Any]]
Planner = Callable[[Any, Account, datetime], Awaitable[Plan]]


def validate_reason(reason: Optional[str], min_length: int, max_length: int) -> str:
    """Trim a reason and check its length; returns the trimmed reason."""
    trimmed = (reason or "").strip()
    if not min_length <= len(trimmed) <= max_length:
        raise InvalidReasonError(min_length, max_length, len(trimmed))
    return trimmed


class LifecycleEngine:
    """
    Applies deletion, scheduling, cancellation and restoration to accounts.

    Usage:
        engine = LifecycleEngine(async_session, LifecycleConfig.from_settings(settings))
        account = await engine.delete_now(
            account_id="9c1...",
            reason="Repeated terms of service violations",
            actor=Actor(user_id="admin-1", role="admin"),
        )
    """

    def __init__(
        self,
        session_factory,
        config: LifecycleConfig,
        repository: Optional[AccountRepository] = None,
        audit: Optional[AuditRecorder] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        broadcaster=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.config = config
        self.repository = repository or AccountRepository()
        self.audit = audit or AuditRecorder()
        self.policy = RestorationPolicy(self.audit, config.max_restorations)
        self.dispatcher = dispatcher
        self.broadcaster = broadcaster
        self.clock = clock

    # ============================================
    # Transitions
    # ============================================

    async def delete_now(
        self,
        account_id: str,
        reason: str,
        actor: Actor,
        notify: bool = True,
    ) -> Account:
        """
        Delete an account immediately (ACTIVE or SCHEDULED_FOR_DELETION -> DELETED).

        Raises:
            InvalidReasonError, SelfDeletionError, AccountNotFoundError,
            AlreadyDeletedError, RateLimitExceededError, ConcurrentModificationError,
            InfrastructureError
        """
        reason = validate_reason(reason, DELETION_REASON_MIN, DELETION_REASON_MAX)
        if actor.user_id == account_id:
            raise SelfDeletionError()

        async def plan(db, account: Account, now: datetime) -> Plan:
            if account.status == AccountStatus.DELETED:
                raise AlreadyDeletedError(account.id)
            await self._check_rate_limit(db, actor, now)

            deletion_count = await self._next_deletion_count(db, account)
            new_state = {
                "status": AccountStatus.DELETED,
                "deletion_count": deletion_count,
                "last_deleted_at": now,
                "scheduled_deletion_at": None,
                "reminder_sent_for": None,
            }
            return new_state, {"reason": reason, "scheduled_for": account.scheduled_deletion_at}

        account, entry = await self._run(account_id, HistoryAction.DELETED, actor, plan)

        if notify:
            self._notify(
                NotificationKind.DELETED, account, entry,
                reason=reason, date=account.last_deleted_at,
            )
        return account

    async def schedule_deletion(
        self,
        account_id: str,
        reason: str,
        scheduled_for: datetime,
        actor: Actor,
        notify: bool = True,
    ) -> Account:
        """
        Schedule deletion at a future date (ACTIVE -> SCHEDULED_FOR_DELETION).

        scheduled_for must be in the future and within the configured horizon.
        Aware datetimes are converted to UTC; naive ones are taken as UTC.
        """
        reason = validate_reason(reason, DELETION_REASON_MIN, DELETION_REASON_MAX)
        if actor.user_id == account_id:
            raise SelfDeletionError()

        scheduled_for = to_naive_utc(scheduled_for)
        self._check_schedule(scheduled_for, self.clock())

        async def plan(db, account: Account, now: datetime) -> Plan:
            if account.status != AccountStatus.ACTIVE:
                raise NotActiveError(account.id, account.status.value)
            await self._check_rate_limit(db, actor, now)

            new_state = {
                "status": AccountStatus.SCHEDULED_FOR_DELETION,
                "scheduled_deletion_at": scheduled_for,
                "reminder_sent_for": None,
            }
            return new_state, {"reason": reason, "scheduled_for": scheduled_for}

        account, entry = await self._run(account_id, HistoryAction.SCHEDULED, actor, plan)

        if notify:
            self._notify(
                NotificationKind.SCHEDULED, account, entry,
                reason=reason, date=scheduled_for,
            )
        return account

    async def cancel_scheduled_deletion(self, account_id: str, actor: Actor) -> Account:
        """Call off a pending deletion (SCHEDULED_FOR_DELETION -> ACTIVE). Sends no email."""

        async def plan(db, account: Account, now: datetime) -> Plan:
            if account.status != AccountStatus.SCHEDULED_FOR_DELETION:
                raise NoScheduleToCancelError(account.id, account.status.value)

            new_state = {
                "status": AccountStatus.ACTIVE,
                "scheduled_deletion_at": None,
                "reminder_sent_for": None,
            }
            return new_state, {"reason": CANCEL_REASON, "scheduled_for": account.scheduled_deletion_at}

        account, _ = await self._run(account_id, HistoryAction.CANCELLED_SCHEDULE, actor, plan)
        return account

    async def restore(self, account_id: str, reason: str, actor: Actor) -> Account:
        """
        Restore a deleted account (DELETED -> ACTIVE), bounded by max_restorations.

        The deletion count is replayed from history; the cached column can only
        make the limit stricter, never looser.
        """
        reason = validate_reason(reason, RESTORATION_REASON_MIN, RESTORATION_REASON_MAX)

        async def plan(db, account: Account, now: datetime) -> Plan:
            if account.status != AccountStatus.DELETED:
                raise NotDeletedError(account.id, account.status.value)

            eligibility = await self.policy.evaluate(
                db, account.id, cached_count=account.deletion_count
            )
            if not eligibility.can_restore:
                raise RestorationLimitExceededError(
                    eligibility.max_restorations, eligibility.deletion_count
                )
            await self._check_rate_limit(db, actor, now)

            new_state = {
                "status": AccountStatus.ACTIVE,
                "last_restored_at": now,
                "scheduled_deletion_at": None,
                "reminder_sent_for": None,
                # Repairs a stale cache
                "deletion_count": eligibility.deletion_count,
            }
            return new_state, {
                "reason": reason,
                "restoration_sequence": eligibility.deletion_count,
            }

        account, entry = await self._run(account_id, HistoryAction.RESTORED, actor, plan)

        self._notify(
            NotificationKind.RESTORED, account, entry,
            reason=reason, date=account.last_restored_at,
        )
        return account

    async def execute_scheduled(
        self,
        account_id: str,
        now: Optional[datetime] = None,
    ) -> Account:
        """
        Carry out a due scheduled deletion (SCHEDULED_FOR_DELETION -> DELETED).

        Called by the sweep loop. Accounts that were cancelled or already
        deleted in the meantime raise NotScheduledError and are left untouched.
        """
        now = to_naive_utc(now) if now is not None else None

        async def plan(db, account: Account, at: datetime) -> Plan:
            if account.status != AccountStatus.SCHEDULED_FOR_DELETION:
                raise NotScheduledError(account.id, account.status.value)
            if account.scheduled_deletion_at is None or account.scheduled_deletion_at > at:
                raise NotDueError(account.id, account.scheduled_deletion_at or at)

            scheduling = await self.audit.latest_entry(db, account.id, HistoryAction.SCHEDULED)
            reason = scheduling.reason if scheduling else DEFAULT_EXECUTION_REASON

            deletion_count = await self._next_deletion_count(db, account)
            new_state = {
                "status": AccountStatus.DELETED,
                "deletion_count": deletion_count,
                "last_deleted_at": at,
                "scheduled_deletion_at": None,
                "reminder_sent_for": None,
            }
            return new_state, {"reason": reason, "scheduled_for": account.scheduled_deletion_at}

        account, entry = await self._run(
            account_id, HistoryAction.EXECUTED, SCHEDULER_ACTOR, plan, now=now
        )

        self._notify(
            NotificationKind.DELETED, account, entry,
            reason=entry.reason, date=account.last_deleted_at,
        )
        return account

    # ============================================
    # Queries
    # ============================================

    async def get_account(self, account_id: str) -> Account:
        """Get an account or raise AccountNotFoundError."""

        async def query(db):
            account = await self.repository.get(db, account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            return account

        return await self._read(f"get account {account_id}", query)

    async def get_history(self, account_id: str) -> list[DeletionHistoryEntry]:
        """All history rows for an account, newest first."""

        async def query(db):
            if await self.repository.get(db, account_id) is None:
                raise AccountNotFoundError(account_id)
            return await self.audit.get_history(db, account_id)

        return await self._read(f"get history for account {account_id}", query)

    async def evaluate_restoration(self, account_id: str) -> RestorationEligibility:
        """Whether a restore would currently be allowed by the restoration limit."""

        async def query(db):
            account = await self.repository.get(db, account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            return await self.policy.evaluate(db, account_id, cached_count=account.deletion_count)

        return await self._read(f"evaluate restoration for account {account_id}", query)

    # ============================================
    # Internals
    # ============================================

    def _check_schedule(self, scheduled_for: datetime, now: datetime):
        if scheduled_for <= now:
            raise InvalidScheduleError(
                "Scheduled deletion date must be in the future",
                {"scheduled_for": scheduled_for.isoformat()},
            )
        horizon = self.config.max_schedule_horizon
        if scheduled_for > now + horizon:
            raise InvalidScheduleError(
                f"Scheduled deletion date cannot be more than {horizon.days} days in the future",
                {"scheduled_for": scheduled_for.isoformat(), "max_days": horizon.days},
            )

    async def _check_rate_limit(self, db, actor: Actor, now: datetime):
        limit = self.config.admin_rate_limit_per_hour
        if limit <= 0 or actor.user_id == SCHEDULER_ACTOR_ID:
            return

        recent = await self.audit.count_actor_operations(
            db, actor.user_id, now - RATE_LIMIT_WINDOW, RATE_LIMITED_ACTIONS
        )
        if recent >= limit:
            logger.warning(f"Rate limit hit for {actor.user_id}: {recent} operations in the last hour")
            raise RateLimitExceededError(limit)

    async def _next_deletion_count(self, db, account: Account) -> int:
        replayed = await self.audit.count_deletions(db, account.id)
        return max(account.deletion_count, replayed) + 1

    async def _run(
        self,
        account_id: str,
        action: HistoryAction,
        actor: Actor,
        plan: Planner,
        now: Optional[datetime] = None,
    ) -> tuple[Account, DeletionHistoryEntry]:
        """Run one transition with timeout and store-error mapping, then broadcast."""
        try:
            account, entry = await asyncio.wait_for(
                self._transact(account_id, action, actor, plan, now),
                timeout=self.config.operation_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Timed out after {self.config.operation_timeout}s: "
                f"{action.value} on account {account_id}"
            )
            raise OperationTimeoutError(self.config.operation_timeout)
        except SQLAlchemyError as e:
            logger.exception(f"Store error during {action.value} on account {account_id}")
            raise InfrastructureError() from e

        logger.info(
            f"Account {account_id}: {action.value} by {actor.user_id} "
            f"-> {account.status.value} (history {entry.id})"
        )

        if self.broadcaster is not None:
            await self.broadcaster.broadcast_update(account, action.value)

        return account, entry

    async def _transact(
        self,
        account_id: str,
        action: HistoryAction,
        actor: Actor,
        plan: Planner,
        now: Optional[datetime],
    ) -> tuple[Account, DeletionHistoryEntry]:
        """
        Read, plan, write. On a version conflict the whole step is retried once
        against fresh state, so the loser of a race gets the precise error
        (e.g. AlreadyDeletedError) rather than a generic conflict.
        """
        target = ACTION_TARGETS[action]

        for attempt in range(2):
            async with self.session_factory() as db:
                try:
                    async with db.begin():
                        account = await self.repository.get(db, account_id, for_update=True)
                        if account is None:
                            raise AccountNotFoundError(account_id)

                        at = now or self.clock()
                        new_state, history = await plan(db, account, at)

                        if not can_transition(account.status, target):
                            raise StateConflictError(
                                f"Invalid transition {account.status.value} -> {target.value}",
                                account.id,
                                account.status.value,
                            )

                        updated = await self.repository.update_status(
                            db, account.id, account.version, new_state
                        )
                        if not updated:
                            raise _VersionConflict()

                        entry = await self.audit.append(
                            db,
                            account.id,
                            action,
                            actor_id=actor.user_id,
                            occurred_at=at,
                            **history,
                        )
                        # Load the written state before commit; nothing runs after it
                        await db.refresh(account)
                except _VersionConflict:
                    logger.info(
                        f"Account {account_id} changed during {action.value} "
                        f"(attempt {attempt + 1}), re-reading"
                    )
                    continue

                return account, entry

        raise ConcurrentModificationError(account_id)

    async def _read(self, description: str, query):
        async def run():
            async with self.session_factory() as db:
                return await query(db)

        try:
            return await asyncio.wait_for(run(), timeout=self.config.operation_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Timed out after {self.config.operation_timeout}s: {description}")
            raise OperationTimeoutError(self.config.operation_timeout)
        except SQLAlchemyError as e:
            logger.exception(f"Store error during {description}")
            raise InfrastructureError() from e

    def _notify(
        self,
        kind: NotificationKind,
        account: Account,
        entry: Optional[DeletionHistoryEntry],
        **payload,
    ):
        if self.dispatcher is None:
            return
        self.dispatcher.send(
            kind,
            account.email,
            {"user_name": account.full_name, **payload},
            history_entry_id=entry.id if entry else None,
        )
