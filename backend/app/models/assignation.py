import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.course import Course
from app.models.professor import Professor
from app.models.program import Section


assignation_sections = Table(
    "assignation_sections",
    Base.metadata,
    Column("assignation_id", String(36), ForeignKey("assignations.id", ondelete="CASCADE"), primary_key=True),
    Column("section_id", String(36), ForeignKey("sections.id", ondelete="CASCADE"), primary_key=True),
)


class Assignation(Base):
    """A teaching obligation: one course taught by one professor for one department."""

    __tablename__ = "assignations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    course_id: Mapped[str] = mapped_column(String(36), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    professor_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("professors.id", ondelete="CASCADE"),
        nullable=False,
    )
    department_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("departments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    school_year: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    semester: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    course: Mapped[Course] = relationship()
    professor: Mapped[Professor] = relationship()
    target_sections: Mapped[list[Section]] = relationship(secondary=assignation_sections)
