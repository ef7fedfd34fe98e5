"""Recovery activities: one scheduled or completed recovery slot of a teacher."""

import uuid
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from recovery_tracker.core.enums import ActivityStatus
from recovery_tracker.db.session import Base


MODULE_MINUTES = 50
MAX_MODULE_NUMBER = 10


class RecoveryActivity(Base):
    __tablename__ = "recovery_activities"
    __table_args__ = (
        # One activity per teacher per slot. NULL module numbers (imported records) never collide.
        UniqueConstraint("teacher_id", "date", "module_number", name="uq_activity_teacher_slot"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    teacher_id = Column(Uuid(as_uuid=True), ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False, index=True)
    school_year_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("school_years.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    recovery_type_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("recovery_types.id", ondelete="RESTRICT"),
        nullable=False,
    )
    date = Column(Date, nullable=False)
    module_number = Column(Integer, nullable=True)  # 1..MAX_MODULE_NUMBER
    class_name = Column(String(50), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, nullable=False)
    modules_equivalent = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=ActivityStatus.PLANNED.value)
    co_teacher_name = Column(String(200), nullable=True)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    teacher = relationship("Teacher", lazy="joined")
    recovery_type = relationship("RecoveryType", lazy="joined")
    school_year = relationship("SchoolYear")
