from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class RecoveryTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    color: str = Field("#3B82F6", pattern=r"^#[0-9A-Fa-f]{6}$")
    default_duration: Optional[int] = Field(None, gt=0, description="Minutes")
    requires_approval: bool = False
    requires_co_teacher: bool = Field(False, description="Activities of this type must name a co-teacher")
    is_active: bool = True


class RecoveryTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    default_duration: Optional[int] = Field(None, gt=0)
    requires_approval: Optional[bool] = None
    requires_co_teacher: Optional[bool] = None
    is_active: Optional[bool] = None


class RecoveryTypeResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    color: str
    default_duration: Optional[int] = None
    requires_approval: bool
    requires_co_teacher: bool
    is_active: bool

    class Config:
        from_attributes = True
