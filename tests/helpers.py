"""Shared test helpers."""

from datetime import datetime, timedelta

from account_lifecycle.services.lifecycle_engine import Actor
from account_lifecycle.services.notifications import NotificationDispatcher

# Fixed "now" for deterministic tests
NOW = datetime(2026, 3, 2, 12, 0, 0)

ADMIN = Actor(user_id="admin-1", role="admin")

DELETE_REASON = "no longer using service"
RESTORE_REASON = "reinstated"


class FakeClock:
    """Injectable clock; call it for the current time, advance() to move it."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


async def deliver_pending(dispatcher: NotificationDispatcher):
    """Run the worker until every queued notification is processed."""
    await dispatcher.start()
    await dispatcher.join()
    await dispatcher.stop()
