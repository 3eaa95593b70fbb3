"""Typed errors raised by the lifecycle engine.

Every rejected operation names the violated rule in its message so the
dashboard can show it verbatim. Infrastructure errors carry an opaque message;
the underlying cause is logged where it is caught.
"""

import enum
from datetime import datetime
from typing import Any, Optional


class ErrorKind(str, enum.Enum):
    """Machine-readable error kind returned to admin tooling."""

    NOT_FOUND = "not_found"
    INVALID_REASON = "invalid_reason"
    INVALID_SCHEDULE = "invalid_schedule"
    SELF_DELETION = "self_deletion"
    ALREADY_DELETED = "already_deleted"
    NOT_ACTIVE = "not_active"
    NO_SCHEDULE_TO_CANCEL = "no_schedule_to_cancel"
    NOT_DELETED = "not_deleted"
    NOT_SCHEDULED = "not_scheduled"
    NOT_DUE = "not_due"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    RESTORATION_LIMIT_EXCEEDED = "restoration_limit_exceeded"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    INFRASTRUCTURE = "infrastructure"


class LifecycleError(Exception):
    """
    Base class for all lifecycle errors.

    Attributes:
        kind: ErrorKind for programmatic handling
        message: Human-readable message, safe to show to admins
        status_code: HTTP status used by the API layer
        details: Extra structured data (e.g. restoration limits)
    """

    kind: ErrorKind = ErrorKind.INFRASTRUCTURE
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


# ============================================
# Validation (user-correctable)
# ============================================


class ValidationError(LifecycleError):
    status_code = 400


class InvalidReasonError(ValidationError):
    kind = ErrorKind.INVALID_REASON

    def __init__(self, min_length: int, max_length: int, actual_length: int):
        super().__init__(
            f"Reason must be between {min_length} and {max_length} characters "
            f"(got {actual_length})",
            {"min_length": min_length, "max_length": max_length, "length": actual_length},
        )


class InvalidScheduleError(ValidationError):
    kind = ErrorKind.INVALID_SCHEDULE


class SelfDeletionError(ValidationError):
    kind = ErrorKind.SELF_DELETION

    def __init__(self):
        super().__init__("You cannot delete your own account")


# ============================================
# State conflicts (wrong current status)
# ============================================


class StateConflictError(LifecycleError):
    status_code = 409

    def __init__(self, message: str, account_id: str, status: Optional[str] = None):
        details = {"account_id": account_id}
        if status is not None:
            details["status"] = status
        super().__init__(message, details)


class AlreadyDeletedError(StateConflictError):
    kind = ErrorKind.ALREADY_DELETED

    def __init__(self, account_id: str):
        super().__init__(f"Account {account_id} is already deleted", account_id, "deleted")


class NotActiveError(StateConflictError):
    kind = ErrorKind.NOT_ACTIVE

    def __init__(self, account_id: str, status: str):
        super().__init__(
            f"Only active accounts can be scheduled for deletion "
            f"(account {account_id} is {status})",
            account_id,
            status,
        )


class NoScheduleToCancelError(StateConflictError):
    kind = ErrorKind.NO_SCHEDULE_TO_CANCEL

    def __init__(self, account_id: str, status: str):
        super().__init__(
            f"Account {account_id} does not have a scheduled deletion (status is {status})",
            account_id,
            status,
        )


class NotDeletedError(StateConflictError):
    kind = ErrorKind.NOT_DELETED

    def __init__(self, account_id: str, status: str):
        super().__init__(
            f"Account {account_id} is not deleted (status is {status})",
            account_id,
            status,
        )


class NotScheduledError(StateConflictError):
    kind = ErrorKind.NOT_SCHEDULED

    def __init__(self, account_id: str, status: str):
        super().__init__(
            f"Account {account_id} is no longer scheduled for deletion (status is {status})",
            account_id,
            status,
        )


class NotDueError(StateConflictError):
    kind = ErrorKind.NOT_DUE

    def __init__(self, account_id: str, scheduled_for: datetime):
        super().__init__(
            f"Scheduled deletion of account {account_id} is not due until "
            f"{scheduled_for.isoformat()}",
            account_id,
            "scheduled_for_deletion",
        )


class ConcurrentModificationError(StateConflictError):
    kind = ErrorKind.CONCURRENT_MODIFICATION

    def __init__(self, account_id: str):
        super().__init__(
            f"Account {account_id} was modified concurrently, please retry",
            account_id,
        )


# ============================================
# Limits
# ============================================


class LimitExceededError(LifecycleError):
    status_code = 409


class RestorationLimitExceededError(LimitExceededError):
    kind = ErrorKind.RESTORATION_LIMIT_EXCEEDED

    def __init__(self, max_restorations: int, used: int):
        self.max_restorations = max_restorations
        self.used = used
        super().__init__(
            f"Account has reached the maximum restoration limit of {max_restorations}",
            {"max": max_restorations, "used": used},
        )


class RateLimitExceededError(LimitExceededError):
    kind = ErrorKind.RATE_LIMITED
    status_code = 429

    def __init__(self, limit: int):
        super().__init__(
            f"Rate limit of {limit} deletion operations per hour exceeded. "
            f"Please wait before performing more deletion operations.",
            {"limit": limit},
        )


# ============================================
# Lookup
# ============================================


class NotFoundError(LifecycleError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class AccountNotFoundError(NotFoundError):
    def __init__(self, account_id: str):
        super().__init__(f"Account {account_id} not found", {"account_id": account_id})


# ============================================
# Infrastructure (store unavailable, timeouts)
# ============================================


class InfrastructureError(LifecycleError):
    kind = ErrorKind.INFRASTRUCTURE
    status_code = 503

    def __init__(self, message: str = "The account store is unavailable, please try again later"):
        super().__init__(message)


class OperationTimeoutError(InfrastructureError):
    kind = ErrorKind.TIMEOUT
    status_code = 504

    def __init__(self, seconds: float):
        super().__init__(f"Operation timed out after {seconds:g} seconds")
