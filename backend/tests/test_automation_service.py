from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.core.config import Settings
from app.core.exceptions import ScopeValidationError, StoreWriteError
from app.models.assignation import Assignation
from app.models.course import Course, CourseType
from app.models.department import Department, DepartmentSettings, UnschedulablePolicy
from app.models.professor import Professor
from app.models.program import Program, Section
from app.models.room import Room
from app.models.schedule import ScheduleEntry
from app.services.automation import (
    AutomationScope,
    build_scheduler,
    build_scheduling_config,
    load_scope_inputs,
    run_automation,
    validate_placements_against_baseline,
)
from app.services.backtracking_scheduler import SearchStatus


def _seed(db, *, with_settings: bool = True) -> Department:
    department = Department(code="CS", name="Computer Science")
    if with_settings:
        department.settings = DepartmentSettings()
    db.add(department)
    db.flush()
    program = Program(code="BSCS", name="BS Computer Science", department_id=department.id)
    db.add(program)
    db.flush()
    db.add(Section(program_id=program.id, year=1, letter="A", enrolled_count=30))
    db.add(Room(code="R1"))
    course = Course(code="CS101", description="Programming 1", duration=3, type=CourseType.core, year=1)
    professor = Professor(name="Ana", department_id=department.id)
    db.add_all([course, professor])
    db.flush()
    db.add(
        Assignation(
            course_id=course.id,
            professor_id=professor.id,
            department_id=department.id,
            school_year="2026-2027",
            semester="1",
        )
    )
    db.commit()
    return department


def test_build_scheduling_config_merges_settings_and_overrides():
    settings = DepartmentSettings(
        start_hour=8,
        end_hour=17,
        professor_max_hours=6,
        professor_max_weekly_hours=None,
        student_max_hours=8,
        max_allowed_gap=2.0,
        next_schedule_break=0.5,
        enforce_spacing_rules=True,
        unschedulable_policy=UnschedulablePolicy.abort,
        room_type_matching=False,
    )
    app_settings = Settings(search_max_nodes=1000, search_time_limit_seconds=5.0)
    config = build_scheduling_config(settings, {"end_hour": 18, "max_nodes": 50}, app_settings)

    assert (config.start_hour, config.end_hour) == (8, 18)
    assert config.professor_max_daily_hours == 6
    assert config.student_max_daily_hours == 8
    assert config.spacing.min_break_minutes == 30
    assert config.spacing.max_gap_minutes == 120
    assert config.unschedulable_policy == UnschedulablePolicy.abort
    assert config.max_nodes == 50
    assert config.time_limit_seconds == 5.0


def test_invalid_overrides_become_scope_errors():
    settings = DepartmentSettings(
        start_hour=7,
        end_hour=19,
        professor_max_hours=12,
        student_max_hours=12,
        enforce_spacing_rules=False,
        unschedulable_policy=UnschedulablePolicy.skip,
        room_type_matching=False,
    )
    with pytest.raises(ScopeValidationError):
        build_scheduling_config(settings, {"start_hour": 20}, Settings())


def test_missing_settings_are_rejected(db_session):
    department = _seed(db_session, with_settings=False)
    with pytest.raises(ScopeValidationError) as exc_info:
        load_scope_inputs(db_session, AutomationScope(department.id))
    assert exc_info.value.status_code == 422


def test_scope_filters_by_term(db_session):
    department = _seed(db_session)
    assert len(load_scope_inputs(db_session, AutomationScope(department.id, "2026-2027", "1")).obligations) == 1
    assert load_scope_inputs(db_session, AutomationScope(department.id, "2026-2027", "2")).obligations == []


def test_store_failure_rolls_back_and_is_distinct_from_infeasibility(db_session, monkeypatch):
    department = _seed(db_session)
    monkeypatch.setattr(db_session, "commit", MagicMock(side_effect=OperationalError("COMMIT", {}, Exception("disk full"))))

    with pytest.raises(StoreWriteError) as exc_info:
        run_automation(db_session, AutomationScope(department.id))

    assert exc_info.value.status_code == 500
    assert db_session.execute(select(ScheduleEntry)).scalars().all() == []


def test_run_automation_commits_and_revalidation_rejects_locked_groups(db_session):
    department = _seed(db_session)
    scope = AutomationScope(department.id)
    outcome = run_automation(db_session, scope, actor="tests")
    assert outcome.result.status == SearchStatus.solved
    assert len(outcome.created_entry_ids) == 1

    inputs = load_scope_inputs(db_session, scope)
    assert inputs.replaceable_entry_ids == outcome.created_entry_ids
    assert validate_placements_against_baseline(inputs, outcome.result.placements) == []

    db_session.execute(select(ScheduleEntry)).scalar_one().locked = True
    db_session.commit()
    locked_inputs = load_scope_inputs(db_session, scope)
    problems = validate_placements_against_baseline(locked_inputs, outcome.result.placements)
    assert problems == ["CS101 for BSCS-1A is already covered by a locked entry"]


def test_revalidation_reports_groups_left_without_placement(db_session):
    department = _seed(db_session)
    scope = AutomationScope(department.id)
    inputs = load_scope_inputs(db_session, scope)

    problems = validate_placements_against_baseline(inputs, [])

    assert problems == ["CS101 for BSCS-1A has no placement"]
    skipped = [obligation.id for obligation in inputs.obligations]
    assert validate_placements_against_baseline(inputs, [], skipped_obligation_ids=skipped) == []


def test_core_course_reaches_same_year_sections_of_other_departments(db_session):
    department = _seed(db_session)
    other = Department(code="EE", name="Electrical Engineering")
    db_session.add(other)
    db_session.flush()
    program = Program(code="PB", name="BS Electrical Engineering", department_id=other.id)
    db_session.add(program)
    db_session.flush()
    db_session.add(Section(program_id=program.id, year=1, letter="B", enrolled_count=30))
    db_session.add(Section(program_id=program.id, year=2, letter="A", enrolled_count=30))
    db_session.commit()

    scope = AutomationScope(department.id)
    inputs = load_scope_inputs(db_session, scope)
    assert {section.label for section in inputs.sections} == {"BSCS-1A", "PB-1B"}
    pending = build_scheduler(inputs).pending_groups()
    assert sorted(label for _, group in pending for label in group.labels) == ["BSCS-1A", "PB-1B"]

    outcome = run_automation(db_session, scope, actor="tests")
    assert outcome.result.status == SearchStatus.solved
    assert len(outcome.created_entry_ids) == 2
    scheduled = {
        section.id
        for entry in db_session.execute(select(ScheduleEntry)).scalars()
        for section in entry.sections
    }
    assert scheduled == {section.id for section in inputs.sections}
