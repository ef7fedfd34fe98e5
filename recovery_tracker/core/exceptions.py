from typing import Any, Dict, Optional, Union
from uuid import UUID

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors.

    Subclasses carry a machine-readable ``code`` and optional structured
    ``context`` so routers can hand callers enough data to act on the error.
    """

    code = "service_error"

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.context = context or {}

    @property
    def detail(self) -> Union[str, Dict[str, Any]]:
        """HTTPException detail: plain message, or message + code + context."""
        if not self.context:
            return self.message
        return {"message": self.message, "code": self.code, **self.context}


class NotFoundError(ServiceError):
    code = "not_found"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class InvalidDataError(ServiceError):
    """Malformed payload or import row."""

    code = "validation_error"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST, context)


class ForbiddenError(ServiceError):
    code = "forbidden"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class ConflictError(ServiceError):
    code = "conflict"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class BudgetExhaustedError(ServiceError):
    code = "budget_exhausted"

    def __init__(self, annual: int, used: int) -> None:
        super().__init__(
            "Budget esaurito: non ci sono moduli disponibili",
            status.HTTP_400_BAD_REQUEST,
            {"budget": {"annual": annual, "used": used, "remaining": max(0, annual - used)}},
        )
        self.annual = annual
        self.used = used


class SchedulingConflictError(ServiceError):
    """Same teacher already booked on the same date and module."""

    code = "scheduling_conflict"

    def __init__(self, conflicting_activity_id: Optional[UUID], title: Optional[str] = None) -> None:
        message = "Sovrapposizione docente: il modulo è già occupato"
        if title:
            message = f"{message} ({title})"
        super().__init__(
            message,
            status.HTTP_409_CONFLICT,
            {"conflicting_activity_id": str(conflicting_activity_id) if conflicting_activity_id else None},
        )
        self.conflicting_activity_id = conflicting_activity_id


class ImmutableActivityError(ServiceError):
    """Edit or delete attempted on a completed activity."""

    code = "immutable"

    def __init__(self, activity_id: UUID, action: str) -> None:
        super().__init__(
            f"Impossibile {action} un'attività completata",
            status.HTTP_400_BAD_REQUEST,
            {"activity_id": str(activity_id), "status": "completed"},
        )
        self.activity_id = activity_id
