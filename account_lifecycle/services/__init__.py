"""Lifecycle services for the account lifecycle service."""

from account_lifecycle.services.auth import (
    AuthenticatedUser,
    get_current_user,
    require_authenticated_user,
    require_admin_user,
    is_admin,
)
from account_lifecycle.services.deletion_scheduler import DeletionScheduler, SweepResult
from account_lifecycle.services.lifecycle_engine import (
    Actor,
    LifecycleEngine,
    SCHEDULER_ACTOR_ID,
)
from account_lifecycle.services.notifications import (
    NotificationDispatcher,
    NotificationKind,
)
from account_lifecycle.services.repository import AccountRepository

__all__ = [
    "AuthenticatedUser",
    "get_current_user",
    "require_authenticated_user",
    "require_admin_user",
    "is_admin",
    "DeletionScheduler",
    "SweepResult",
    "Actor",
    "LifecycleEngine",
    "SCHEDULER_ACTOR_ID",
    "NotificationDispatcher",
    "NotificationKind",
    "AccountRepository",
]
