import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base import Base


class UnschedulablePolicy(str, Enum):
    skip = "skip"
    abort = "abort"


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code: Mapped[str] = mapped_column(String(20), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    settings: Mapped["DepartmentSettings | None"] = relationship(
        back_populates="department",
        uselist=False,
        cascade="all, delete-orphan",
    )


class DepartmentSettings(Base):
    __tablename__ = "department_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    department_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("departments.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    start_hour: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    end_hour: Mapped[int] = mapped_column(Integer, nullable=False, default=19)
    professor_max_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=12)
    professor_max_weekly_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    student_max_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=12)
    professor_break: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    max_allowed_gap: Mapped[float] = mapped_column(Float, nullable=False, default=5.0)
    next_schedule_break: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    enforce_spacing_rules: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    unschedulable_policy: Mapped[UnschedulablePolicy] = mapped_column(
        SAEnum(UnschedulablePolicy, name="unschedulable_policy"),
        nullable=False,
        default=UnschedulablePolicy.skip,
    )
    room_type_matching: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    department: Mapped[Department] = relationship(back_populates="settings")
