"""Recovery type catalog. Read-only from the ledger's point of view."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, Uuid

from recovery_tracker.db.session import Base


class RecoveryType(Base):
    __tablename__ = "recovery_types"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    color = Column(String(7), nullable=False, default="#3B82F6")
    default_duration = Column(Integer, nullable=True)  # minutes
    requires_approval = Column(Boolean, nullable=False, default=False)
    # Activities of this type must name a co-teacher (e.g. "Copresenza")
    requires_co_teacher = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
