# Core lifecycle components
from account_lifecycle.core.audit import AuditRecorder
from account_lifecycle.core.restoration_policy import (
    RestorationEligibility,
    RestorationPolicy,
    evaluate_restoration,
)
from account_lifecycle.core.state_machine import can_transition

__all__ = [
    "AuditRecorder",
    "RestorationEligibility",
    "RestorationPolicy",
    "evaluate_restoration",
    "can_transition",
]
