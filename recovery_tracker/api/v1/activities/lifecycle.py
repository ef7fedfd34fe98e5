"""
Activity state machine: planned <-> completed.

Both transitions are allowed at any time. While an activity is completed it
cannot be edited or deleted; moving it back to planned re-enables both.
Status changes never touch the budget: planned and completed activities are
both counted as used.
"""

from recovery_tracker.core.enums import ActivityStatus
from recovery_tracker.core.exceptions import ImmutableActivityError
from recovery_tracker.core.models import RecoveryActivity


def target_status(completed: bool) -> ActivityStatus:
    return ActivityStatus.COMPLETED if completed else ActivityStatus.PLANNED


def is_completed(activity: RecoveryActivity) -> bool:
    return activity.status == ActivityStatus.COMPLETED.value


def ensure_mutable(activity: RecoveryActivity, action: str) -> None:
    """Raise ImmutableActivityError if the activity is completed. action: 'modificare' | 'eliminare'."""
    if is_completed(activity):
        raise ImmutableActivityError(activity.id, action)


def transition(activity: RecoveryActivity, completed: bool) -> bool:
    """Set the status for a toggle. Returns False when already in the requested state."""
    new_status = target_status(completed).value
    if activity.status == new_status:
        return False
    activity.status = new_status
    return True
