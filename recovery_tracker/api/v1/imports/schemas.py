from datetime import date
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, NonNegativeInt, PositiveInt


class BudgetCsvRow(BaseModel):
    """One line of the annual allocation sheet (Docente;Minuti/Settimana;Tesoretto;Moduli;Saldo)."""

    teacher_name: str = Field(..., min_length=1)
    minutes_weekly: NonNegativeInt
    minutes_annual: NonNegativeInt
    modules_annual: NonNegativeInt
    balance: NonNegativeInt


class ActivityCsvRow(BaseModel):
    """One line of the historical activity sheet (Cognome;Nome;Data;Tipologia;Durata;Titolo[;Descrizione])."""

    surname: str = Field(..., min_length=1)
    given_name: str = Field(..., min_length=1)
    activity_date: date
    recovery_type: str = Field(..., min_length=1)
    duration_minutes: PositiveInt
    title: str = Field(..., min_length=1)
    description: Optional[str] = None

    @property
    def teacher_name(self) -> str:
        return f"{self.surname} {self.given_name}"


class ImportRowError(BaseModel):
    row: int
    teacher: Optional[str] = None
    error: str


class ImportRowWarning(BaseModel):
    row: int
    teacher: Optional[str] = None
    message: str


class ImportResult(BaseModel):
    success: bool = True
    imported: int = 0
    failed: int = 0
    errors: List[ImportRowError] = []
    warnings: List[ImportRowWarning] = []
    school_year_id: Optional[UUID] = None


class ActivityImportResult(ImportResult):
    deleted: int = 0
    message: Optional[str] = None


class ClearActivitiesResponse(BaseModel):
    success: bool = True
    message: str
    deleted: int
    budgets_reset: int
    school_year_id: Optional[UUID] = None
