from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class BudgetUpdate(BaseModel):
    """Edit the allocation of a budget. Used counters are owned by the ledger and cannot be set."""

    minutes_weekly: Optional[int] = Field(None, ge=0)
    minutes_annual: Optional[int] = Field(None, ge=0)
    modules_annual: Optional[int] = Field(None, ge=0)


class BudgetResponse(BaseModel):
    id: UUID
    teacher_id: UUID
    school_year_id: UUID
    teacher_name: Optional[str] = None
    minutes_weekly: int
    minutes_annual: int
    modules_annual: int
    minutes_used: int
    modules_used: int
    minutes_remaining: int
    modules_remaining: int
    percentage_used: int = Field(..., description="modules_used / modules_annual, rounded percent")
    import_source: Optional[str] = None
    imported_at: Optional[datetime] = None


class BudgetSnapshot(BaseModel):
    """Module figures returned alongside ledger mutations."""

    modules_annual: int
    modules_used: int
    modules_remaining: int
    minutes_used: int
