import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, Enum as SAEnum, ForeignKey, Integer, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.program import Program
from app.models.room import RoomType


class CourseType(str, Enum):
    core = "Core"
    professional = "Professional"


course_programs = Table(
    "course_programs",
    Base.metadata,
    Column("course_id", String(36), ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True),
    Column("program_id", String(36), ForeignKey("programs.id", ondelete="CASCADE"), primary_key=True),
)


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    units: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    type: Mapped[CourseType] = mapped_column(SAEnum(CourseType, name="course_type"), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    room_type: Mapped[RoomType | None] = mapped_column(SAEnum(RoomType, name="course_room_type"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    programs: Mapped[list[Program]] = relationship(secondary=course_programs)

    @property
    def program_ids(self) -> list[str]:
        return [program.id for program in self.programs]
