"""Load a department scope from the store, run the search, and commit accepted placements.

The search itself runs against in-memory inputs; the store is read once up
front and written once at the end, inside a single transaction, and only when
the run is solved.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from time import perf_counter

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.config import Settings, get_settings
from app.core.exceptions import ScopeValidationError, StoreWriteError
from app.models.assignation import Assignation
from app.models.course import Course, CourseType
from app.models.department import Department, DepartmentSettings
from app.models.program import Program, Section
from app.models.room import Room
from app.models.schedule import ScheduleEntry, schedule_sections
from app.services.audit import log_activity
from app.services.backtracking_scheduler import (
    BacktrackingScheduler,
    FixedPlacement,
    ObligationInput,
    OrderingStrategy,
    Placement,
    RoomInput,
    SchedulingConfig,
    SearchContext,
    SearchResult,
    SearchStatus,
    VariantPriorities,
)
from app.services.constraints import MINUTES_PER_HOUR, SpacingRules
from app.services.scope_lock import scope_key
from app.services.section_resolver import SECTION_COMBINE_LIMIT, SectionRef

logger = logging.getLogger(__name__)

OVERRIDABLE_FIELDS = (
    "start_hour",
    "end_hour",
    "professor_max_daily_hours",
    "professor_max_weekly_hours",
    "student_max_daily_hours",
    "unschedulable_policy",
    "room_type_matching",
    "max_nodes",
    "time_limit_seconds",
)


@dataclass(frozen=True)
class AutomationScope:
    department_id: str
    school_year: str = ""
    semester: str = ""

    @property
    def key(self) -> str:
        return scope_key(self.department_id, self.school_year, self.semester)


@dataclass
class ScopeInputs:
    scope: AutomationScope
    config: SchedulingConfig
    obligations: list[ObligationInput] = field(default_factory=list)
    rooms: list[RoomInput] = field(default_factory=list)
    sections: list[SectionRef] = field(default_factory=list)
    fixed: list[FixedPlacement] = field(default_factory=list)
    replaceable_entry_ids: list[str] = field(default_factory=list)


@dataclass
class AutomationOutcome:
    result: SearchResult
    created_entry_ids: list[str] = field(default_factory=list)
    removed_entry_ids: list[str] = field(default_factory=list)


def time_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * MINUTES_PER_HOUR + int(minutes)


def build_scheduling_config(
    settings: DepartmentSettings,
    overrides: Mapping[str, object] | None = None,
    app_settings: Settings | None = None,
) -> SchedulingConfig:
    """Merge stored department settings, process-wide search limits and per-request overrides."""
    app_settings = app_settings or get_settings()
    spacing = None
    if settings.enforce_spacing_rules:
        spacing = SpacingRules(
            min_break_minutes=int(round(settings.next_schedule_break * MINUTES_PER_HOUR)),
            max_gap_minutes=int(round(settings.max_allowed_gap * MINUTES_PER_HOUR)),
        )
    config = SchedulingConfig(
        start_hour=settings.start_hour,
        end_hour=settings.end_hour,
        professor_max_daily_hours=settings.professor_max_hours,
        professor_max_weekly_hours=settings.professor_max_weekly_hours,
        student_max_daily_hours=settings.student_max_hours,
        combine_limit=SECTION_COMBINE_LIMIT,
        spacing=spacing,
        unschedulable_policy=settings.unschedulable_policy,
        room_type_matching=settings.room_type_matching,
        max_nodes=app_settings.search_max_nodes,
        time_limit_seconds=app_settings.search_time_limit_seconds,
    )
    if not overrides:
        return config

    applied = {key: value for key, value in overrides.items() if key in OVERRIDABLE_FIELDS and value is not None}
    try:
        return replace(config, **applied)
    except ValueError as exc:
        raise ScopeValidationError(str(exc), details={"overrides": sorted(applied)}) from exc


def _load_department(db: Session, scope: AutomationScope) -> Department:
    if not scope.department_id:
        raise ScopeValidationError("A department is required", details={"department_id": scope.department_id})
    department = db.get(Department, scope.department_id)
    if department is None:
        raise ScopeValidationError(
            f"Department {scope.department_id} does not exist",
            details={"department_id": scope.department_id},
        )
    if department.settings is None:
        raise ScopeValidationError(
            f"Department {department.code} has no scheduling settings",
            details={"department_id": department.id},
        )
    return department


def _scope_assignations(db: Session, scope: AutomationScope) -> list[Assignation]:
    query = (
        select(Assignation)
        .where(Assignation.department_id == scope.department_id)
        .options(
            selectinload(Assignation.course).selectinload(Course.programs),
            selectinload(Assignation.professor),
            selectinload(Assignation.target_sections),
        )
        .order_by(Assignation.created_at, Assignation.id)
    )
    if scope.school_year:
        query = query.where(Assignation.school_year == scope.school_year)
    if scope.semester:
        query = query.where(Assignation.semester == scope.semester)
    return list(db.execute(query).scalars().all())


def _to_obligation(assignation: Assignation) -> ObligationInput:
    course = assignation.course
    return ObligationInput(
        id=assignation.id,
        course_id=course.id,
        course_code=course.code,
        course_type=course.type,
        course_year=course.year,
        duration_hours=course.duration,
        professor_id=assignation.professor_id,
        professor_name=assignation.professor.name,
        room_type=course.room_type,
        linked_program_ids=tuple(program.id for program in course.programs),
        explicit_section_ids=tuple(section.id for section in assignation.target_sections),
    )


def _load_sections(db: Session, department_id: str, obligations: Sequence[ObligationInput]) -> list[SectionRef]:
    program_ids = set(db.execute(select(Program.id).where(Program.department_id == department_id)).scalars())
    section_ids: set[str] = set()
    core_years: set[int] = set()
    for obligation in obligations:
        program_ids.update(obligation.linked_program_ids)
        section_ids.update(obligation.explicit_section_ids)
        if obligation.course_type == CourseType.core:
            core_years.add(obligation.course_year)

    # core courses reach every section of their year, whichever department owns the program
    rows = db.execute(
        select(Section, Program.code)
        .join(Program, Section.program_id == Program.id)
        .where(
            Section.program_id.in_(program_ids) | Section.id.in_(section_ids) | Section.year.in_(core_years)
        )
    ).all()
    return [
        SectionRef(
            id=section.id,
            program_id=section.program_id,
            program_code=program_code,
            year=section.year,
            letter=section.letter,
            enrolled_count=section.enrolled_count,
        )
        for section, program_code in rows
    ]


def _to_fixed(entry: ScheduleEntry) -> FixedPlacement:
    return FixedPlacement(
        entry_id=entry.id,
        assignation_id=entry.assignation_id,
        room_id=entry.room_id,
        day=entry.day,
        start_minute=time_to_minutes(entry.start_time),
        end_minute=time_to_minutes(entry.end_time),
        professor_id=entry.assignation.professor_id,
        course_id=entry.assignation.course_id,
        section_ids=tuple(section.id for section in entry.sections),
        locked=entry.locked,
    )


def load_scope_inputs(
    db: Session,
    scope: AutomationScope,
    *,
    overrides: Mapping[str, object] | None = None,
    app_settings: Settings | None = None,
) -> ScopeInputs:
    department = _load_department(db, scope)
    config = build_scheduling_config(department.settings, overrides, app_settings)

    assignations = _scope_assignations(db, scope)
    obligations = [_to_obligation(assignation) for assignation in assignations]
    in_scope = {obligation.id for obligation in obligations}

    rooms = [
        RoomInput(id=room.id, code=room.code, type=room.type)
        for room in db.execute(select(Room).order_by(Room.code)).scalars()
    ]

    entries = db.execute(
        select(ScheduleEntry).options(
            selectinload(ScheduleEntry.assignation),
            selectinload(ScheduleEntry.sections),
        )
    ).scalars()
    fixed: list[FixedPlacement] = []
    replaceable: list[str] = []
    for entry in entries:
        if entry.assignation_id in in_scope and not entry.locked:
            replaceable.append(entry.id)
            continue
        fixed.append(_to_fixed(entry))

    return ScopeInputs(
        scope=scope,
        config=config,
        obligations=obligations,
        rooms=rooms,
        sections=_load_sections(db, department.id, obligations),
        fixed=fixed,
        replaceable_entry_ids=replaceable,
    )


def build_scheduler(
    inputs: ScopeInputs,
    *,
    ordering: OrderingStrategy = OrderingStrategy.declaration,
    priorities: VariantPriorities | None = None,
    rotation: int = 0,
    seed: int | None = None,
    cancel_event: threading.Event | None = None,
) -> BacktrackingScheduler:
    return BacktrackingScheduler(
        obligations=inputs.obligations,
        rooms=inputs.rooms,
        sections=inputs.sections,
        config=inputs.config,
        fixed_placements=inputs.fixed,
        ordering=ordering,
        priorities=priorities,
        rotation=rotation,
        seed=seed,
        cancel_event=cancel_event,
    )


def validate_placements_against_baseline(
    inputs: ScopeInputs,
    placements: Sequence[Placement],
    skipped_obligation_ids: Iterable[str] = (),
) -> list[str]:
    """Replay placements on top of the current baseline and describe every one that no longer fits.

    Besides conflicts this reports placements for groups a locked entry now serves, and groups the
    current scope requires that the placements leave out. Obligations in ``skipped_obligation_ids``
    were dropped by the run itself and are not expected to be placed.
    """
    skipped = set(skipped_obligation_ids)
    obligations = {obligation.id: obligation for obligation in inputs.obligations}
    rooms = {room.id: room for room in inputs.rooms}
    known_sections = {section.id for section in inputs.sections}
    scheduler = build_scheduler(inputs)
    covered = scheduler.locked_coverage()
    context = SearchContext(inputs.config)
    for fixed in inputs.fixed:
        context.reserve(fixed)

    problems: list[str] = []
    for placement in placements:
        obligation = obligations.get(placement.obligation_id)
        room = rooms.get(placement.room_id)
        if obligation is None:
            problems.append(f"Assignation {placement.obligation_id} is no longer part of this scope")
            continue
        if room is None:
            problems.append(f"Room {placement.room_code} no longer exists")
            continue
        missing = [section.label for section in placement.group.sections if section.id not in known_sections]
        if missing:
            problems.append(f"Sections {', '.join(missing)} no longer exist")
            continue
        if covered.get(obligation.id, set()).issuperset(placement.group.section_ids):
            problems.append(
                f"{obligation.course_code} for {', '.join(placement.group.labels)} "
                "is already covered by a locked entry"
            )
            continue
        duration = placement.end_minute - placement.start_minute
        if not context.can_place(obligation, placement.group, room.id, placement.day, placement.start_minute, duration):
            problems.append(
                f"{obligation.course_code} in {room.code} on day {placement.day} "
                f"at {placement.start_time}-{placement.end_time} conflicts with the current schedule"
            )
            continue
        context.commit(obligation, placement.group, room, placement.day, placement.start_minute, placement.end_minute)

    placed = {(placement.obligation_id, placement.group.section_ids) for placement in placements}
    for obligation, group in scheduler.pending_groups():
        if obligation.id not in skipped and (obligation.id, group.section_ids) not in placed:
            problems.append(f"{obligation.course_code} for {', '.join(group.labels)} has no placement")
    return problems


def commit_placements(
    db: Session,
    inputs: ScopeInputs,
    placements: Sequence[Placement],
    *,
    actor: str | None,
    action: str,
    details: dict | None = None,
) -> list[str]:
    """Replace the scope's unlocked entries with ``placements`` in one transaction."""
    removed = list(inputs.replaceable_entry_ids)
    try:
        if removed:
            db.execute(delete(schedule_sections).where(schedule_sections.c.schedule_entry_id.in_(removed)))
            db.execute(delete(ScheduleEntry).where(ScheduleEntry.id.in_(removed)))

        created: list[ScheduleEntry] = []
        for placement in placements:
            entry = ScheduleEntry(
                day=placement.day,
                start_time=placement.start_time,
                end_time=placement.end_time,
                room_id=placement.room_id,
                assignation_id=placement.obligation_id,
                locked=False,
            )
            db.add(entry)
            created.append(entry)
        db.flush()
        created_ids = [entry.id for entry in created]

        bindings = [
            {"schedule_entry_id": entry.id, "section_id": section_id}
            for entry, placement in zip(created, placements)
            for section_id in placement.group.section_ids
        ]
        if bindings:
            db.execute(insert(schedule_sections), bindings)

        log_activity(
            db,
            actor=actor,
            action=action,
            entity_type="department",
            entity_id=inputs.scope.department_id,
            details={
                "school_year": inputs.scope.school_year,
                "semester": inputs.scope.semester,
                "created": len(created),
                "removed": len(removed),
                **(details or {}),
            },
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(
            "SCHEDULE COMMIT FAILED | department_id=%s | placements=%s | removed=%s",
            inputs.scope.department_id,
            len(placements),
            len(removed),
        )
        raise StoreWriteError(
            "Failed to save the generated schedule; no changes were applied",
            details={"department_id": inputs.scope.department_id},
        ) from exc
    # Relationship collections do not see the bulk binding insert.
    db.expire_all()
    return created_ids


def run_automation(
    db: Session,
    scope: AutomationScope,
    *,
    actor: str | None = None,
    overrides: Mapping[str, object] | None = None,
    cancel_event: threading.Event | None = None,
    app_settings: Settings | None = None,
) -> AutomationOutcome:
    started = perf_counter()
    logger.info(
        "AUTOMATION START | department_id=%s | school_year=%s | semester=%s | actor=%s",
        scope.department_id,
        scope.school_year,
        scope.semester,
        actor,
    )
    inputs = load_scope_inputs(db, scope, overrides=overrides, app_settings=app_settings)
    logger.info(
        "AUTOMATION INPUTS | department_id=%s | obligations=%s | rooms=%s | sections=%s | fixed=%s | replaceable=%s",
        scope.department_id,
        len(inputs.obligations),
        len(inputs.rooms),
        len(inputs.sections),
        len(inputs.fixed),
        len(inputs.replaceable_entry_ids),
    )

    result = build_scheduler(inputs, cancel_event=cancel_event).run()
    outcome = AutomationOutcome(result=result)
    if result.status == SearchStatus.solved:
        outcome.created_entry_ids = commit_placements(
            db,
            inputs,
            result.placements,
            actor=actor,
            action="schedule.automate",
            details={"failed": len(result.failed), "nodes_explored": result.nodes_explored},
        )
        outcome.removed_entry_ids = list(inputs.replaceable_entry_ids)
    elif result.status in (SearchStatus.budget_exhausted, SearchStatus.cancelled):
        logger.warning(
            "AUTOMATION STOPPED | department_id=%s | status=%s | nodes=%s | runtime_ms=%s",
            scope.department_id,
            result.status.value,
            result.nodes_explored,
            result.runtime_ms,
        )

    logger.info(
        "AUTOMATION COMPLETE | department_id=%s | status=%s | placed=%s | failed=%s | nodes=%s | runtime_ms=%s | wall_ms=%s",
        scope.department_id,
        result.status.value,
        len(result.placements),
        len(result.failed),
        result.nodes_explored,
        result.runtime_ms,
        int((perf_counter() - started) * 1000),
    )
    return outcome
