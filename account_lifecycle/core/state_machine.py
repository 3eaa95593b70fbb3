"""Valid account status transitions.

The lifecycle engine consults this table before every write; it never
mutates state on its own.
"""

from account_lifecycle.models import AccountStatus, HistoryAction

# Valid state transitions
# Key: current status, Value: list of valid next statuses
#
# Special cases:
# - SCHEDULED_FOR_DELETION → DELETED: admin deletes immediately, or the sweep executes
# - DELETED → ACTIVE: restoration, bounded by the restoration limit
VALID_TRANSITIONS: dict[AccountStatus, list[AccountStatus]] = {
    AccountStatus.ACTIVE: [AccountStatus.SCHEDULED_FOR_DELETION, AccountStatus.DELETED],
    AccountStatus.SCHEDULED_FOR_DELETION: [AccountStatus.ACTIVE, AccountStatus.DELETED],
    AccountStatus.DELETED: [AccountStatus.ACTIVE],
}

# Status each history action leads to
ACTION_TARGETS: dict[HistoryAction, AccountStatus] = {
    HistoryAction.DELETED: AccountStatus.DELETED,
    HistoryAction.SCHEDULED: AccountStatus.SCHEDULED_FOR_DELETION,
    HistoryAction.CANCELLED_SCHEDULE: AccountStatus.ACTIVE,
    HistoryAction.RESTORED: AccountStatus.ACTIVE,
    HistoryAction.EXECUTED: AccountStatus.DELETED,
}


def can_transition(current: AccountStatus, target: AccountStatus) -> bool:
    """Check if transition from current to target status is valid."""
    return target in VALID_TRANSITIONS.get(current, [])
