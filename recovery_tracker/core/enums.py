from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"


class ActivityStatus(str, Enum):
    PLANNED = "planned"
    COMPLETED = "completed"
