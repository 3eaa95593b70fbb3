"""Best-effort lifecycle notifications.

send() only enqueues, so request latency never depends on the email
provider. A background worker renders and delivers each message. Failures are
logged and leave deletion_history.notification_sent = false; they never reach
the caller of the lifecycle operation.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from account_lifecycle.clients.email import EmailClient
from account_lifecycle.clients.templates import format_date, render_email
from account_lifecycle.core.audit import AuditRecorder

logger = logging.getLogger(__name__)

# Max notifications waiting for delivery before new ones are dropped
DEFAULT_QUEUE_SIZE = 1000

# How long stop() waits for queued notifications to drain (seconds)
DRAIN_TIMEOUT = 10


class NotificationKind(str, enum.Enum):
    """Lifecycle emails, named after their templates."""

    DELETED = "deleted"
    SCHEDULED = "scheduled"
    REMINDER = "reminder"
    RESTORED = "restored"


@dataclass
class Notification:
    kind: NotificationKind
    recipient: str
    payload: dict[str, Any] = field(default_factory=dict)
    history_entry_id: Optional[int] = None


class NotificationDispatcher:
    """
    Queues lifecycle emails and delivers them from a background task.

    Usage:
        dispatcher = NotificationDispatcher(email_client, async_session, audit)
        await dispatcher.start()
        dispatcher.send(NotificationKind.DELETED, "user@example.com", {...}, history_entry_id=42)
        ...
        await dispatcher.stop()
    """

    def __init__(
        self,
        email_client: EmailClient,
        session_factory,
        audit: AuditRecorder,
        timezone_name: str = "UTC",
        contact_email: str = "",
        enabled: bool = True,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        self.email_client = email_client
        self.session_factory = session_factory
        self.audit = audit
        self.timezone_name = timezone_name
        self.contact_email = contact_email
        self.enabled = enabled
        self._queue: asyncio.Queue[Notification] = asyncio.Queue(maxsize=queue_size)
        self._worker_task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        """Notifications waiting for delivery."""
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    def send(
        self,
        kind: NotificationKind,
        recipient: str,
        payload: dict[str, Any],
        history_entry_id: Optional[int] = None,
    ) -> bool:
        """
        Enqueue a notification without waiting for delivery.

        Never raises. Returns False if the notification was not queued.
        """
        if not self.enabled:
            logger.info(f"Email notifications disabled, not sending {kind.value} to {recipient}")
            return False

        try:
            self._queue.put_nowait(
                Notification(
                    kind=kind,
                    recipient=recipient,
                    payload=payload,
                    history_entry_id=history_entry_id,
                )
            )
        except asyncio.QueueFull:
            logger.error(f"Notification queue full, dropping {kind.value} email to {recipient}")
            return False

        logger.debug(f"Queued {kind.value} notification for {recipient}")
        return True

    async def deliver(self, notification: Notification) -> bool:
        """
        Render and send one notification, then record the outcome.

        Returns True if the provider accepted the email.
        """
        kind = notification.kind
        try:
            context = self._build_context(notification.payload)
            subject, html = render_email(kind.value, context)
            success, message = await self.email_client.send_email(
                notification.recipient, subject, html
            )
        except Exception:
            logger.exception(f"Error delivering {kind.value} notification to {notification.recipient}")
            success, message = False, "exception"

        if not success:
            logger.warning(
                f"Failed to send {kind.value} notification to {notification.recipient}: {message}"
            )
            return False

        if notification.history_entry_id is not None:
            try:
                async with self.session_factory() as db:
                    await self.audit.mark_notification_sent(db, notification.history_entry_id)
                    await db.commit()
            except SQLAlchemyError:
                logger.exception(
                    f"Sent {kind.value} email but could not flag history entry "
                    f"{notification.history_entry_id}"
                )

        return True

    def _build_context(self, payload: dict[str, Any]) -> dict[str, Any]:
        context = {"contact_email": self.contact_email, "reason": "", **payload}
        if context.get("date") is not None:
            context["date"] = format_date(context["date"], self.timezone_name)
        return context

    async def _worker(self):
        """Deliver queued notifications one at a time."""
        logger.info("Starting notification worker...")
        while True:
            notification = await self._queue.get()
            try:
                await self.deliver(notification)
            finally:
                self._queue.task_done()

    async def start(self):
        """Start the background delivery task."""
        if self.is_running:
            return
        self._worker_task = asyncio.create_task(self._worker())

    async def join(self):
        """Wait until every queued notification has been processed."""
        await self._queue.join()

    async def stop(self):
        """Drain the queue (bounded) and stop the worker."""
        if not self._worker_task:
            return

        try:
            await asyncio.wait_for(self._queue.join(), timeout=DRAIN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"Notification queue not drained, {self.pending} emails dropped")

        self._worker_task.cancel()
        try:
            await self._worker_task
        except asyncio.CancelledError:
            pass
        self._worker_task = None
        logger.info("Notification worker stopped")
