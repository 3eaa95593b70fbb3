"""Restoration eligibility.

The deletion count is replayed from deletion_history instead of trusting
accounts.deletion_count, so a stale cache can never grant an extra restore.
The cached value may only make the answer stricter.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from account_lifecycle.core.audit import AuditRecorder

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True)
class RestorationEligibility:
    deletion_count: int
    max_restorations: int
    can_restore: bool
    remaining: int


def evaluate_restoration(deletion_count: int, max_restorations: int) -> RestorationEligibility:
    """
    Compute eligibility from a deletion count.

    An account deleted N times can be restored while N < max_restorations.
    """
    return RestorationEligibility(
        deletion_count=deletion_count,
        max_restorations=max_restorations,
        can_restore=deletion_count < max_restorations,
        remaining=max(0, max_restorations - deletion_count),
    )


class RestorationPolicy:
    """
    Evaluates restoration eligibility for an account from its history.

    Usage:
        policy = RestorationPolicy(audit, max_restorations=3)
        eligibility = await policy.evaluate(db, account.id, cached_count=account.deletion_count)
    """

    def __init__(self, audit: AuditRecorder, max_restorations: int):
        self.audit = audit
        self.max_restorations = max_restorations

    async def evaluate(
        self,
        db: "AsyncSession",
        account_id: str,
        cached_count: int = 0,
    ) -> RestorationEligibility:
        replayed = await self.audit.count_deletions(db, account_id)
        return evaluate_restoration(max(replayed, cached_count), self.max_restorations)
