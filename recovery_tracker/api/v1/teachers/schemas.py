from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from recovery_tracker.api.v1.budgets.schemas import BudgetResponse


class TeacherCreate(BaseModel):
    surname: str = Field(..., min_length=1, max_length=100, description="Cognome")
    given_name: str = Field("", max_length=100, description="Nome")
    email: Optional[EmailStr] = Field(None, description="Links the teacher to a user account")


class TeacherUpdate(BaseModel):
    """Name and email edits. Identity (id) never changes; merging teachers is not supported."""

    surname: Optional[str] = Field(None, min_length=1, max_length=100)
    given_name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None


class TeacherResponse(BaseModel):
    id: UUID
    surname: str
    given_name: str
    email: Optional[str] = None
    display_name: str

    class Config:
        from_attributes = True


class TeacherWithBudgetResponse(TeacherResponse):
    budget: Optional[BudgetResponse] = None


class TeacherProfileResponse(BaseModel):
    """Authenticated teacher's profile with the active year's budget."""

    teacher: TeacherResponse
    current_budget: Optional[BudgetResponse] = None
    school_year_name: Optional[str] = None
    message: Optional[str] = None
