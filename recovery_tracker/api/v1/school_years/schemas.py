from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class SchoolYearCreate(BaseModel):
    """Create school year. name must be unique."""

    name: str = Field(..., min_length=1, max_length=20, description="e.g. 2024-25")
    start_date: date = Field(..., description="School year start date")
    end_date: date = Field(..., description="School year end date (must be after start_date)")
    weeks_count: int = Field(36, ge=1, le=52)
    is_active: bool = Field(
        False,
        description="Activate this year? If true, every other year is deactivated.",
    )


class SchoolYearUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=20)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    weeks_count: Optional[int] = Field(None, ge=1, le=52)


class SchoolYearResponse(BaseModel):
    id: UUID
    name: str
    start_date: date
    end_date: date
    weeks_count: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
