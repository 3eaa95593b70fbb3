"""Deletion scheduler - executes due scheduled deletions and sends reminders.

Each tick (run_once):
1. Executes every SCHEDULED_FOR_DELETION account whose date has passed
2. Queues a reminder for accounts entering the reminder window, at most once
   per scheduled date

An account that fails is retried with exponential backoff and, if it keeps
failing, reported in SweepResult.failed. It never stops the rest of the tick.
Accounts cancelled or restored between listing and execution are skipped.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from account_lifecycle.config import LifecycleConfig
from account_lifecycle.core.errors import InfrastructureError, LifecycleError
from account_lifecycle.models import Account, utcnow
from account_lifecycle.services.lifecycle_engine import LifecycleEngine
from account_lifecycle.services.notifications import NotificationDispatcher, NotificationKind
from account_lifecycle.services.repository import AccountRepository

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Account IDs handled by one tick."""

    executed: list[str] = field(default_factory=list)
    reminded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class DeletionScheduler:
    """
    Periodic sweep over scheduled deletions.

    Usage:
        scheduler = DeletionScheduler(engine, async_session, config, dispatcher=dispatcher)
        await scheduler.start()     # background loop every config.sweep_interval
        result = await scheduler.run_once()  # or a single tick
        await scheduler.stop()
    """

    def __init__(
        self,
        engine: LifecycleEngine,
        session_factory,
        config: LifecycleConfig,
        repository: Optional[AccountRepository] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.engine = engine
        self.session_factory = session_factory
        self.config = config
        self.repository = repository or AccountRepository()
        self.dispatcher = dispatcher
        self.clock = clock
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, now: Optional[datetime] = None) -> SweepResult:
        """Run a single sweep tick."""
        now = now or self.clock()
        result = SweepResult()

        try:
            async with self.session_factory() as db:
                due = await self.repository.list_due_for_execution(db, now)
        except SQLAlchemyError:
            logger.exception("Deletion scheduler could not list due accounts")
            due = []

        if due:
            logger.info(f"Deletion scheduler: {len(due)} scheduled deletions due")

        for account in due:
            if self._stop_event.is_set():
                logger.info("Deletion scheduler stopping, leaving remaining accounts for next start")
                break
            await self._execute(account.id, now, result)

        await self._send_reminders(now, result)

        if result.executed or result.reminded or result.failed:
            logger.info(
                f"Sweep complete: {len(result.executed)} executed, "
                f"{len(result.reminded)} reminded, {len(result.failed)} failed"
            )
        return result

    async def _execute(self, account_id: str, now: datetime, result: SweepResult):
        """Execute one account, retrying transient failures with backoff."""
        max_retries = self.config.sweep_max_retries

        for attempt in range(max_retries + 1):
            try:
                await self.engine.execute_scheduled(account_id, now=now)
                result.executed.append(account_id)
                return
            except InfrastructureError as e:
                if attempt >= max_retries:
                    logger.error(
                        f"Giving up on scheduled deletion of {account_id} "
                        f"after {attempt + 1} attempts: {e.message}"
                    )
                    result.failed.append(account_id)
                    return

                delay = self.config.sweep_retry_backoff * (2 ** attempt)
                logger.warning(
                    f"Scheduled deletion of {account_id} failed ({e.message}), "
                    f"retrying in {delay}s"
                )
                if await self._wait_or_stop(delay):
                    result.failed.append(account_id)
                    return
            except LifecycleError as e:
                # Cancelled, restored or already deleted since listing
                logger.info(f"Skipping scheduled deletion of {account_id}: {e.message}")
                return
            except Exception:
                logger.exception(f"Unexpected error executing scheduled deletion of {account_id}")
                result.failed.append(account_id)
                return

    async def _send_reminders(self, now: datetime, result: SweepResult):
        """Claim and queue reminders for deletions inside the reminder window."""
        try:
            async with self.session_factory() as db:
                upcoming = await self.repository.list_due_for_reminder(
                    db, now, self.config.reminder_lead_time
                )
        except SQLAlchemyError:
            logger.exception("Deletion scheduler could not list upcoming deletions")
            return

        for account in upcoming:
            try:
                claimed = await self._claim_reminder(account)
            except SQLAlchemyError:
                logger.exception(f"Could not claim reminder for account {account.id}")
                result.failed.append(account.id)
                continue

            if not claimed:
                # Another sweep got it, or the schedule changed since listing
                continue

            if self.dispatcher is not None:
                self.dispatcher.send(
                    NotificationKind.REMINDER,
                    account.email,
                    {
                        "user_name": account.full_name,
                        "date": account.scheduled_deletion_at,
                    },
                )
            result.reminded.append(account.id)
            logger.info(
                f"Reminder queued for account {account.id} "
                f"(deletion at {account.scheduled_deletion_at})"
            )

    async def _claim_reminder(self, account: Account) -> bool:
        async with self.session_factory() as db:
            async with db.begin():
                return await self.repository.claim_reminder(
                    db, account.id, account.scheduled_deletion_at
                )

    async def _wait_or_stop(self, delay: float) -> bool:
        """Sleep for delay seconds; returns True if stop() was called meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    async def _loop(self):
        logger.info(
            f"Starting deletion scheduler loop (every {self.config.sweep_interval:g}s)..."
        )
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Deletion scheduler tick failed")

            if await self._wait_or_stop(self.config.sweep_interval):
                break

    async def start(self):
        """Start the background sweep loop."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())

    async def stop(self):
        """
        Stop the sweep loop.

        The account being executed when stop() is called finishes; no new
        account or tick is started afterwards.
        """
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None
        logger.info("Deletion scheduler stopped")
