import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String, Uuid

from recovery_tracker.db.session import Base


class Teacher(Base):
    """Teacher identity. email links the teacher to an authenticated user account."""

    __tablename__ = "teachers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    surname = Column(String(100), nullable=False, index=True)  # cognome
    given_name = Column(String(100), nullable=False, default="")  # nome
    email = Column(String(255), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def display_name(self) -> str:
        return f"{self.given_name} {self.surname}".strip()
