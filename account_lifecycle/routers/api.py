"""REST API endpoints for the back-office dashboard.

Provides:
- Health check
- Account state, deletion history, restoration eligibility
- Delete / schedule / cancel / restore (admin only)
- Manual sweep trigger (admin only)
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from account_lifecycle.config import settings
from account_lifecycle.core.errors import LifecycleError
from account_lifecycle.database import get_db
from account_lifecycle.models import Account
from account_lifecycle.schemas import (
    AccountResponse,
    DeleteAccountPayload,
    DeletionHistoryEntryResponse,
    HealthResponse,
    HistoryResponse,
    OperationResult,
    RestorationEligibilityResponse,
    RestoreAccountPayload,
    ScheduleDeletionPayload,
    SweepResultResponse,
)
from account_lifecycle.services.auth import AuthenticatedUser, require_admin_user
from account_lifecycle.services.deletion_scheduler import DeletionScheduler
from account_lifecycle.services.lifecycle_engine import LifecycleEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])

# Version for health check
VERSION = "0.1.0"


def get_engine(request: Request) -> LifecycleEngine:
    """Lifecycle engine built at startup (see main.lifespan)."""
    return request.app.state.engine


def get_scheduler(request: Request) -> DeletionScheduler:
    return request.app.state.scheduler


def _success(account: Account, message: str) -> OperationResult:
    return OperationResult(
        success=True,
        account=AccountResponse.model_validate(account),
        message=message,
    )


def _failure(error: LifecycleError) -> JSONResponse:
    """Map a lifecycle error to an OperationResult with its HTTP status."""
    result = OperationResult(
        success=False,
        error_kind=error.kind,
        message=error.message,
        details=error.details,
    )
    return JSONResponse(status_code=error.status_code, content=result.model_dump(mode="json"))


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Used by Docker healthcheck and monitoring systems.
    Returns database, deletion scheduler, and notification queue status.
    """
    # Test database connection
    try:
        await db.execute(select(func.count()).select_from(Account))
        db_status = "connected"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = f"error: {str(e)}"

    scheduler = getattr(request.app.state, "scheduler", None)
    if not settings.ENABLE_DELETION_SCHEDULER:
        scheduler_status = "disabled"
    elif scheduler is not None and scheduler.is_running:
        scheduler_status = "running"
    else:
        scheduler_status = "stopped"

    dispatcher = getattr(request.app.state, "dispatcher", None)

    return HealthResponse(
        status="healthy" if db_status == "connected" else "degraded",
        version=VERSION,
        database=db_status,
        deletion_scheduler=scheduler_status,
        notification_queue=dispatcher.pending if dispatcher else 0,
    )


# ============================================
# Account Queries (Admin Only)
# ============================================


@router.get("/accounts/{account_id}", response_model=AccountResponse)
async def get_account(
    account_id: str,
    user: AuthenticatedUser = Depends(require_admin_user),
    engine: LifecycleEngine = Depends(get_engine),
):
    """Get the current lifecycle state of an account. Returns 404 if not found."""
    try:
        account = await engine.get_account(account_id)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return AccountResponse.model_validate(account)


@router.get("/accounts/{account_id}/history", response_model=HistoryResponse)
async def get_account_history(
    account_id: str,
    user: AuthenticatedUser = Depends(require_admin_user),
    engine: LifecycleEngine = Depends(get_engine),
):
    """Full deletion history for an account, newest first."""
    try:
        entries = await engine.get_history(account_id)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return HistoryResponse(
        account_id=account_id,
        entries=[DeletionHistoryEntryResponse.model_validate(e) for e in entries],
        total=len(entries),
    )


@router.get(
    "/accounts/{account_id}/restoration-eligibility",
    response_model=RestorationEligibilityResponse,
)
async def get_restoration_eligibility(
    account_id: str,
    user: AuthenticatedUser = Depends(require_admin_user),
    engine: LifecycleEngine = Depends(get_engine),
):
    """
    Whether the account could be restored under the restoration limit.

    Only the limit is evaluated here; the account must also be deleted
    for a restore to succeed.
    """
    try:
        eligibility = await engine.evaluate_restoration(account_id)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return RestorationEligibilityResponse(
        account_id=account_id,
        deletion_count=eligibility.deletion_count,
        max_restorations=eligibility.max_restorations,
        can_restore=eligibility.can_restore,
        remaining=eligibility.remaining,
    )


# ============================================
# Lifecycle Operations (Admin Only)
# ============================================


@router.post("/accounts/{account_id}/delete", response_model=OperationResult)
async def delete_account(
    account_id: str,
    payload: DeleteAccountPayload,
    user: AuthenticatedUser = Depends(require_admin_user),
    engine: LifecycleEngine = Depends(get_engine),
):
    """
    Delete an account immediately.

    Requires admin privileges (X-Actor-Id / X-Actor-Role headers).
    Sends a deletion notice unless notify=false.
    """
    try:
        account = await engine.delete_now(
            account_id, payload.reason, user.actor, notify=payload.notify
        )
    except LifecycleError as e:
        logger.info(f"Delete of {account_id} by {user.user_id} rejected: {e.message}")
        return _failure(e)

    return _success(account, "Account deleted")


@router.post("/accounts/{account_id}/schedule-deletion", response_model=OperationResult)
async def schedule_account_deletion(
    account_id: str,
    payload: ScheduleDeletionPayload,
    user: AuthenticatedUser = Depends(require_admin_user),
    engine: LifecycleEngine = Depends(get_engine),
):
    """
    Schedule an account for deletion at a future date.

    The date must be in the future and within MAX_SCHEDULE_HORIZON_DAYS.
    """
    try:
        account = await engine.schedule_deletion(
            account_id,
            payload.reason,
            payload.scheduled_for,
            user.actor,
            notify=payload.notify,
        )
    except LifecycleError as e:
        logger.info(f"Schedule of {account_id} by {user.user_id} rejected: {e.message}")
        return _failure(e)

    return _success(account, f"Account scheduled for deletion at {account.scheduled_deletion_at.isoformat()}")


@router.post("/accounts/{account_id}/cancel-scheduled-deletion", response_model=OperationResult)
async def cancel_scheduled_deletion(
    account_id: str,
    user: AuthenticatedUser = Depends(require_admin_user),
    engine: LifecycleEngine = Depends(get_engine),
):
    """Cancel a pending scheduled deletion. No email is sent."""
    try:
        account = await engine.cancel_scheduled_deletion(account_id, user.actor)
    except LifecycleError as e:
        logger.info(f"Cancel for {account_id} by {user.user_id} rejected: {e.message}")
        return _failure(e)

    return _success(account, "Scheduled deletion cancelled")


@router.post("/accounts/{account_id}/restore", response_model=OperationResult)
async def restore_account(
    account_id: str,
    payload: RestoreAccountPayload,
    user: AuthenticatedUser = Depends(require_admin_user),
    engine: LifecycleEngine = Depends(get_engine),
):
    """
    Restore a deleted account.

    Fails with restoration_limit_exceeded once the account has been
    deleted MAX_RESTORATIONS times.
    """
    try:
        account = await engine.restore(account_id, payload.reason, user.actor)
    except LifecycleError as e:
        logger.info(f"Restore of {account_id} by {user.user_id} rejected: {e.message}")
        return _failure(e)

    return _success(account, "Account restored")


# ============================================
# Admin
# ============================================


@router.post("/admin/sweep", response_model=SweepResultResponse)
async def trigger_sweep(
    user: AuthenticatedUser = Depends(require_admin_user),
    scheduler: DeletionScheduler = Depends(get_scheduler),
):
    """
    Run one deletion-scheduler tick now.

    Executes due scheduled deletions and queues pending reminders.
    """
    logger.info(f"Manual sweep triggered by {user.user_id}")

    result = await scheduler.run_once()

    return SweepResultResponse(
        executed=result.executed,
        reminded=result.reminded,
        failed=result.failed,
    )
