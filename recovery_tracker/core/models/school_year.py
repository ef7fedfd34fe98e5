import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String, Uuid

from recovery_tracker.db.session import Base


class SchoolYear(Base):
    """
    School year. Exactly one row has is_active = true; the activation operation in the
    school years service is the only writer of that flag.
    Cannot be deleted while any teacher budget references it.
    """

    __tablename__ = "school_years"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(20), nullable=False, unique=True)  # e.g. "2024-25"
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    weeks_count = Column(Integer, nullable=False, default=36)
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
