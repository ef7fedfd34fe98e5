import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String, Uuid

from recovery_tracker.core.enums import UserRole
from recovery_tracker.db.session import Base


class User(Base):
    """Authenticated account. Teachers are linked to their Teacher row by email."""

    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=True)
    # admin | teacher
    role = Column(String(20), nullable=False, default=UserRole.TEACHER.value)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
