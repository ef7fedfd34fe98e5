import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from recovery_tracker.db.session import Base


class TeacherBudget(Base):
    """
    Annual recovery allocation (tesoretto) of one teacher for one school year.
    *_used counters are only changed through budgets.service.apply_delta / reset_usage.
    0 <= used <= annual holds after every successful ledger mutation.
    """

    __tablename__ = "teacher_budgets"
    __table_args__ = (
        UniqueConstraint("teacher_id", "school_year_id", name="uq_budget_teacher_year"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    teacher_id = Column(Uuid(as_uuid=True), ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False, index=True)
    school_year_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("school_years.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    minutes_weekly = Column(Integer, nullable=False, default=0)
    minutes_annual = Column(Integer, nullable=False, default=0)
    modules_annual = Column(Integer, nullable=False, default=0)
    minutes_used = Column(Integer, nullable=False, default=0)
    modules_used = Column(Integer, nullable=False, default=0)
    import_source = Column(String(255), nullable=True)
    imported_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    teacher = relationship("Teacher", backref="budgets")
    school_year = relationship("SchoolYear")
