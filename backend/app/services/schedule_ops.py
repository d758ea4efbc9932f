"""Store-level operations on schedule entries: manual edits, locking, bulk removal and queries."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, selectinload

from app.core.exceptions import AppError, LockedEntryError, ResourceNotFoundError, SchedulerError
from app.models.assignation import Assignation
from app.models.department import Department
from app.models.program import Section
from app.models.room import Room
from app.models.schedule import ScheduleEntry, schedule_sections
from app.services.audit import log_activity
from app.services.automation import AutomationScope, time_to_minutes
from app.services.constraints import MINUTES_PER_HOUR, intervals_overlap

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@dataclass(frozen=True)
class ManualEntryRequest:
    assignation_id: str
    room_id: str
    day: int
    start_time: str
    end_time: str
    section_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class BulkDeleteResult:
    deleted: int
    kept_locked: int


def _entry_query():
    return select(ScheduleEntry).options(
        selectinload(ScheduleEntry.room),
        selectinload(ScheduleEntry.assignation).selectinload(Assignation.course),
        selectinload(ScheduleEntry.assignation).selectinload(Assignation.professor),
        selectinload(ScheduleEntry.sections).selectinload(Section.program),
    )


def get_entry(db: Session, entry_id: str) -> ScheduleEntry:
    entry = db.execute(_entry_query().where(ScheduleEntry.id == entry_id)).scalar_one_or_none()
    if entry is None:
        raise ResourceNotFoundError("Schedule entry", entry_id)
    return entry


def list_entries(
    db: Session,
    *,
    room_id: str | None = None,
    professor_id: str | None = None,
    department_id: str | None = None,
) -> list[ScheduleEntry]:
    query = _entry_query()
    if professor_id is not None or department_id is not None:
        query = query.join(Assignation, ScheduleEntry.assignation_id == Assignation.id)
    if room_id is not None:
        query = query.where(ScheduleEntry.room_id == room_id)
    if professor_id is not None:
        query = query.where(Assignation.professor_id == professor_id)
    if department_id is not None:
        query = query.where(Assignation.department_id == department_id)
    query = query.order_by(ScheduleEntry.day, ScheduleEntry.start_time, ScheduleEntry.id)
    return list(db.execute(query).scalars().all())


def _parse_window(start_time: str, end_time: str) -> tuple[int, int]:
    if not TIME_PATTERN.match(start_time) or not TIME_PATTERN.match(end_time):
        raise SchedulerError(
            "Invalid time format, expected HH:MM",
            details={"start_time": start_time, "end_time": end_time},
        )
    start = time_to_minutes(start_time)
    end = time_to_minutes(end_time)
    if start >= end:
        raise SchedulerError("Start time must be before end time", details={"start_time": start_time, "end_time": end_time})
    return start, end


def validate_manual_entry(
    db: Session,
    request: ManualEntryRequest,
    *,
    exclude_entry_id: str | None = None,
) -> tuple[Assignation, Room, list[Section]]:
    """Check a manual placement against the working window and every persisted entry on that day."""
    start, end = _parse_window(request.start_time, request.end_time)
    if request.day < 1 or request.day > 6:
        raise SchedulerError("Day must be between 1 and 6", details={"day": request.day})

    assignation = db.get(Assignation, request.assignation_id)
    if assignation is None:
        raise ResourceNotFoundError("Assignation", request.assignation_id)
    room = db.get(Room, request.room_id)
    if room is None:
        raise ResourceNotFoundError("Room", request.room_id)

    if request.section_ids:
        sections = list(db.execute(select(Section).where(Section.id.in_(request.section_ids))).scalars())
        unknown = sorted(set(request.section_ids) - {section.id for section in sections})
        if unknown:
            raise ResourceNotFoundError("Section", unknown[0])
    else:
        sections = list(assignation.target_sections)
    if not sections:
        raise SchedulerError("At least one section is required for a schedule entry")

    department = db.get(Department, assignation.department_id)
    if department is not None and department.settings is not None:
        window_start = department.settings.start_hour * MINUTES_PER_HOUR
        window_end = department.settings.end_hour * MINUTES_PER_HOUR
        if start < window_start or end > window_end:
            raise SchedulerError(
                f"Schedule must fall between {department.settings.start_hour:02d}:00 "
                f"and {department.settings.end_hour:02d}:00",
                details={"start_time": request.start_time, "end_time": request.end_time},
            )

    same_day = [
        entry
        for entry in db.execute(_entry_query().where(ScheduleEntry.day == request.day)).scalars()
        if entry.id != exclude_entry_id
    ]
    section_ids = {section.id for section in sections}
    for entry in same_day:
        if not intervals_overlap(start, end, time_to_minutes(entry.start_time), time_to_minutes(entry.end_time)):
            continue
        window = f"{entry.start_time}-{entry.end_time}"
        if entry.room_id == room.id:
            raise SchedulerError(
                f"Room {room.code} is already booked from {window}",
                details={"conflicting_entry_id": entry.id},
            )
        if entry.assignation.professor_id == assignation.professor_id:
            raise SchedulerError(
                f"Professor {assignation.professor.name} is already teaching from {window}",
                details={"conflicting_entry_id": entry.id},
            )
        clashing = sorted(section.label for section in entry.sections if section.id in section_ids)
        if clashing:
            raise SchedulerError(
                f"Section {clashing[0]} already has a class from {window}",
                details={"conflicting_entry_id": entry.id},
            )

    _check_course_hours(db, assignation, sections, end - start, exclude_entry_id)
    return assignation, room, sections


def _check_course_hours(
    db: Session,
    assignation: Assignation,
    sections: list[Section],
    block_minutes: int,
    exclude_entry_id: str | None,
) -> None:
    course = assignation.course
    allowed = course.duration * MINUTES_PER_HOUR
    entries = db.execute(
        _entry_query()
        .join(Assignation, ScheduleEntry.assignation_id == Assignation.id)
        .where(Assignation.course_id == course.id)
    ).scalars()
    booked: dict[str, int] = {}
    for entry in entries:
        if entry.id == exclude_entry_id:
            continue
        minutes = time_to_minutes(entry.end_time) - time_to_minutes(entry.start_time)
        for section in entry.sections:
            booked[section.id] = booked.get(section.id, 0) + minutes
    for section in sections:
        scheduled = booked.get(section.id, 0)
        if scheduled + block_minutes > allowed:
            raise SchedulerError(
                f"A section already has {scheduled / MINUTES_PER_HOUR:g} hours of {course.code}; "
                f"{course.duration} hours allowed",
                details={"section": section.label, "course": course.code},
            )


def create_manual_entry(db: Session, request: ManualEntryRequest, *, actor: str | None = None) -> ScheduleEntry:
    assignation, room, sections = validate_manual_entry(db, request)
    entry = ScheduleEntry(
        day=request.day,
        start_time=request.start_time,
        end_time=request.end_time,
        room_id=room.id,
        assignation_id=assignation.id,
        locked=False,
    )
    entry.sections = sections
    db.add(entry)
    db.flush()
    log_activity(
        db,
        actor=actor,
        action="schedule.create",
        entity_type="schedule_entry",
        entity_id=entry.id,
        details={"room": room.code, "day": request.day, "start_time": request.start_time},
    )
    db.commit()
    return get_entry(db, entry.id)


def create_manual_entries(
    db: Session,
    requests: list[ManualEntryRequest],
    *,
    actor: str | None = None,
) -> list[ScheduleEntry]:
    """Create several manual entries in one transaction; one failing entry rejects the whole batch.

    Each entry is checked against the store and the entries staged before it.
    """
    if not requests:
        raise SchedulerError("At least one schedule entry is required")
    created: list[str] = []
    try:
        for index, request in enumerate(requests):
            try:
                assignation, room, sections = validate_manual_entry(db, request)
            except AppError as exc:
                exc.details["entry_index"] = index
                raise
            entry = ScheduleEntry(
                day=request.day,
                start_time=request.start_time,
                end_time=request.end_time,
                room_id=room.id,
                assignation_id=assignation.id,
                locked=False,
            )
            entry.sections = sections
            db.add(entry)
            db.flush()
            created.append(entry.id)
    except AppError:
        db.rollback()
        logger.warning("SCHEDULE BATCH REJECTED | entries=%s | staged=%s", len(requests), len(created))
        raise

    log_activity(
        db,
        actor=actor,
        action="schedule.create.batch",
        entity_type="schedule_entry",
        details={"entry_ids": created},
    )
    db.commit()
    logger.info("SCHEDULE BATCH CREATED | entries=%s", len(created))
    return [get_entry(db, entry_id) for entry_id in created]


def update_manual_entry(
    db: Session,
    entry_id: str,
    request: ManualEntryRequest,
    *,
    actor: str | None = None,
) -> ScheduleEntry:
    entry = get_entry(db, entry_id)
    if entry.locked:
        raise LockedEntryError(entry.id)
    assignation, room, sections = validate_manual_entry(db, request, exclude_entry_id=entry.id)
    entry.day = request.day
    entry.start_time = request.start_time
    entry.end_time = request.end_time
    entry.room_id = room.id
    entry.assignation_id = assignation.id
    entry.sections = sections
    log_activity(
        db,
        actor=actor,
        action="schedule.update",
        entity_type="schedule_entry",
        entity_id=entry.id,
        details={"room": room.code, "day": request.day, "start_time": request.start_time},
    )
    db.commit()
    db.expire_all()
    return get_entry(db, entry.id)


def delete_manual_entry(db: Session, entry_id: str, *, actor: str | None = None) -> None:
    entry = get_entry(db, entry_id)
    if entry.locked:
        raise LockedEntryError(entry.id)
    db.execute(delete(schedule_sections).where(schedule_sections.c.schedule_entry_id == entry.id))
    db.execute(
        delete(ScheduleEntry).where(ScheduleEntry.id == entry.id).execution_options(synchronize_session=False)
    )
    db.expunge(entry)
    log_activity(db, actor=actor, action="schedule.delete", entity_type="schedule_entry", entity_id=entry_id)
    db.commit()


def set_entry_lock(db: Session, entry_id: str, locked: bool, *, actor: str | None = None) -> ScheduleEntry:
    entry = get_entry(db, entry_id)
    entry.locked = locked
    log_activity(
        db,
        actor=actor,
        action="schedule.lock" if locked else "schedule.unlock",
        entity_type="schedule_entry",
        entity_id=entry.id,
    )
    db.commit()
    return entry


def bulk_set_lock(
    db: Session,
    *,
    locked: bool,
    department_id: str | None = None,
    room_id: str | None = None,
    professor_id: str | None = None,
    day: int | None = None,
    actor: str | None = None,
) -> int:
    filters = {"department_id": department_id, "room_id": room_id, "professor_id": professor_id, "day": day}
    if all(value is None for value in filters.values()):
        raise SchedulerError("Bulk lock requires at least one filter")

    query = select(ScheduleEntry.id)
    if department_id is not None or professor_id is not None:
        query = query.join(Assignation, ScheduleEntry.assignation_id == Assignation.id)
    if department_id is not None:
        query = query.where(Assignation.department_id == department_id)
    if professor_id is not None:
        query = query.where(Assignation.professor_id == professor_id)
    if room_id is not None:
        query = query.where(ScheduleEntry.room_id == room_id)
    if day is not None:
        query = query.where(ScheduleEntry.day == day)

    entry_ids = list(db.execute(query).scalars())
    if entry_ids:
        db.execute(
            update(ScheduleEntry)
            .where(ScheduleEntry.id.in_(entry_ids))
            .values(locked=locked)
            .execution_options(synchronize_session=False)
        )
    log_activity(
        db,
        actor=actor,
        action="schedule.bulk_lock" if locked else "schedule.bulk_unlock",
        entity_type="schedule_entry",
        details={"filters": {key: value for key, value in filters.items() if value is not None}, "count": len(entry_ids)},
    )
    db.commit()
    db.expire_all()
    logger.info("BULK LOCK | locked=%s | count=%s | filters=%s", locked, len(entry_ids), filters)
    return len(entry_ids)


def bulk_delete(
    db: Session,
    scope: AutomationScope,
    *,
    include_locked: bool = False,
    actor: str | None = None,
) -> BulkDeleteResult:
    """Remove a scope's entries; section bindings go first so no binding outlives its entry."""
    query = (
        select(ScheduleEntry.id, ScheduleEntry.locked)
        .join(Assignation, ScheduleEntry.assignation_id == Assignation.id)
        .where(Assignation.department_id == scope.department_id)
    )
    if scope.school_year:
        query = query.where(Assignation.school_year == scope.school_year)
    if scope.semester:
        query = query.where(Assignation.semester == scope.semester)

    rows = db.execute(query).all()
    doomed = [entry_id for entry_id, locked in rows if include_locked or not locked]
    kept = len(rows) - len(doomed)
    if doomed:
        db.execute(delete(schedule_sections).where(schedule_sections.c.schedule_entry_id.in_(doomed)))
        db.execute(
            delete(ScheduleEntry)
            .where(ScheduleEntry.id.in_(doomed))
            .execution_options(synchronize_session=False)
        )
    log_activity(
        db,
        actor=actor,
        action="schedule.bulk_delete",
        entity_type="department",
        entity_id=scope.department_id,
        details={
            "school_year": scope.school_year,
            "semester": scope.semester,
            "deleted": len(doomed),
            "kept_locked": kept,
            "include_locked": include_locked,
        },
    )
    db.commit()
    db.expire_all()
    logger.info(
        "BULK DELETE | department_id=%s | deleted=%s | kept_locked=%s",
        scope.department_id,
        len(doomed),
        kept,
    )
    return BulkDeleteResult(deleted=len(doomed), kept_locked=kept)
