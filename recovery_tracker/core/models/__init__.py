from recovery_tracker.core.models.activity_log import ActivityLog
from recovery_tracker.core.models.recovery_activity import RecoveryActivity
from recovery_tracker.core.models.recovery_type import RecoveryType
from recovery_tracker.core.models.school_year import SchoolYear
from recovery_tracker.core.models.teacher import Teacher
from recovery_tracker.core.models.teacher_budget import TeacherBudget

__all__ = [
    "ActivityLog",
    "RecoveryActivity",
    "RecoveryType",
    "SchoolYear",
    "Teacher",
    "TeacherBudget",
]
