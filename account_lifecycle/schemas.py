"""Pydantic schemas for API payloads and responses."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, field_validator

from account_lifecycle.core.errors import ErrorKind
from account_lifecycle.models import AccountStatus, HistoryAction


# ============================================
# API Response Schemas
# ============================================


class AccountResponse(BaseModel):
    """Single account for API response."""

    id: str
    email: str
    full_name: str
    status: AccountStatus
    deletion_count: int

    scheduled_deletion_at: Optional[datetime] = None
    reminder_sent_for: Optional[datetime] = None
    last_deleted_at: Optional[datetime] = None
    last_restored_at: Optional[datetime] = None

    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DeletionHistoryEntryResponse(BaseModel):
    """Single row of an account's deletion history."""

    id: int
    account_id: str
    action: HistoryAction
    reason: str
    actor_id: Optional[str] = None
    occurred_at: datetime
    scheduled_for: Optional[datetime] = None
    notification_sent: bool
    restoration_sequence: Optional[int] = None

    class Config:
        from_attributes = True


class HistoryResponse(BaseModel):
    """Full deletion history for an account, newest first."""

    account_id: str
    entries: list[DeletionHistoryEntryResponse]
    total: int


class RestorationEligibilityResponse(BaseModel):
    """Whether a deleted account can still be restored."""

    account_id: str
    deletion_count: int
    max_restorations: int
    can_restore: bool
    remaining: int


class OperationResult(BaseModel):
    """
    Outcome of a lifecycle operation.

    On failure, error_kind names the violated rule and message is safe
    to display as-is.
    """

    success: bool
    account: Optional[AccountResponse] = None
    error_kind: Optional[ErrorKind] = None
    message: str
    details: dict[str, Any] = {}


class SweepResultResponse(BaseModel):
    """Result of a single deletion-scheduler tick."""

    executed: list[str] = []
    reminded: list[str] = []
    failed: list[str] = []


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    deletion_scheduler: str  # "running", "stopped", "disabled"
    notification_queue: int


# ============================================
# Request Payloads (one per operation)
# ============================================


class _ReasonPayload(BaseModel):
    reason: str

    # Length bounds are enforced by the engine so the message names the rule
    @field_validator("reason", mode="before")
    @classmethod
    def strip_reason(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


class DeleteAccountPayload(_ReasonPayload):
    """Payload for immediate deletion."""

    notify: bool = True


class ScheduleDeletionPayload(_ReasonPayload):
    """Payload for scheduling a deletion at a future date."""

    scheduled_for: datetime
    notify: bool = True


class RestoreAccountPayload(_ReasonPayload):
    """Payload for restoring a deleted account."""

    pass


# ============================================
# SSE Event Schemas
# ============================================


class SSEUpdate(BaseModel):
    """Server-sent event payload for real-time admin updates."""

    event_type: str  # "deleted", "scheduled", "cancelled_schedule", "restored", "executed"
    account_id: str
    account: AccountResponse
