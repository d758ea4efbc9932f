import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.assignation import Assignation
from app.models.program import Section
from app.models.room import Room


schedule_sections = Table(
    "schedule_sections",
    Base.metadata,
    Column(
        "schedule_entry_id",
        String(36),
        ForeignKey("schedule_entries.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("section_id", String(36), ForeignKey("sections.id", ondelete="CASCADE"), primary_key=True),
)


class ScheduleEntry(Base):
    __tablename__ = "schedule_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    day: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    room_id: Mapped[str] = mapped_column(String(36), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    assignation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("assignations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    room: Mapped[Room] = relationship()
    assignation: Mapped[Assignation] = relationship()
    sections: Mapped[list[Section]] = relationship(secondary=schedule_sections)
