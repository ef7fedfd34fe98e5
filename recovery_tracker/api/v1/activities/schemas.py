from datetime import date as date_type
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from recovery_tracker.api.v1.budgets.schemas import BudgetSnapshot
from recovery_tracker.core.enums import ActivityStatus
from recovery_tracker.core.models.recovery_activity import MAX_MODULE_NUMBER


class ActivityCreate(BaseModel):
    """Book a recovery slot. Teachers book for themselves; admins must pass teacher_id."""

    teacher_id: Optional[UUID] = None
    school_year_id: Optional[UUID] = Field(None, description="Defaults to the active school year")
    recovery_type_id: UUID
    date: date_type
    module_number: int = Field(..., ge=1, le=MAX_MODULE_NUMBER)
    class_name: str = Field(..., min_length=1, max_length=50)
    duration_minutes: Optional[int] = Field(
        None, gt=0, description="Defaults to the recovery type's default duration"
    )
    description: Optional[str] = None
    co_teacher_name: Optional[str] = Field(None, max_length=200)


class ActivityUpdate(BaseModel):
    """Full update of a planned activity. Duration is fixed at creation and never re-billed."""

    date: date_type
    module_number: int = Field(..., ge=1, le=MAX_MODULE_NUMBER)
    class_name: str = Field(..., min_length=1, max_length=50)
    recovery_type_id: UUID
    description: Optional[str] = None
    co_teacher_name: Optional[str] = Field(None, max_length=200)


class ActivityStatusUpdate(BaseModel):
    """Status toggle. Accepts {"completed": bool} or {"status": "planned" | "completed"}."""

    completed: Optional[bool] = None
    status: Optional[ActivityStatus] = None

    @model_validator(mode="after")
    def validate_one_of(self) -> "ActivityStatusUpdate":
        if self.completed is None and self.status is None:
            raise ValueError('Campo "completed" richiesto (true o false)')
        if self.completed is not None and self.status is not None:
            if self.completed != (self.status == ActivityStatus.COMPLETED):
                raise ValueError("completed and status disagree")
        return self

    @property
    def wants_completed(self) -> bool:
        if self.completed is not None:
            return self.completed
        return self.status == ActivityStatus.COMPLETED


class ActivityResponse(BaseModel):
    id: UUID
    teacher_id: UUID
    school_year_id: UUID
    recovery_type_id: UUID
    date: date_type
    module_number: Optional[int] = None
    class_name: Optional[str] = None
    title: str
    description: Optional[str] = None
    duration_minutes: int
    modules_equivalent: int
    status: str
    co_teacher_name: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime
    # Display fields
    teacher_surname: Optional[str] = None
    teacher_given_name: Optional[str] = None
    recovery_type_name: Optional[str] = None
    recovery_type_color: Optional[str] = None


class ActivityMutationResponse(BaseModel):
    activity: ActivityResponse
    warning: Optional[str] = None
    message: Optional[str] = None
    budget: Optional[BudgetSnapshot] = None


class ActivitySummary(BaseModel):
    total_activities: int
    total_modules: int
    planned: int
    completed: int


class ActivityListResponse(BaseModel):
    activities: List[ActivityResponse]
    summary: ActivitySummary
