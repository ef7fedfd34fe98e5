from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr

from recovery_tracker.core.enums import UserRole


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated user, handed to services.
    teacher_id is set when the account email matches a Teacher row.
    """

    id: UUID
    email: EmailStr
    role: str
    teacher_id: Optional[UUID] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def acting_teacher_id(self) -> Optional[UUID]:
        """Teacher scope for ledger calls: None means unrestricted (admin)."""
        return None if self.is_admin else self.teacher_id
