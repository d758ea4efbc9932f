import threading
from itertools import combinations

import pytest

from app.models.course import CourseType
from app.models.department import UnschedulablePolicy
from app.models.room import RoomType
from app.services.backtracking_scheduler import (
    BacktrackingScheduler,
    FixedPlacement,
    ObligationInput,
    OrderingStrategy,
    RoomInput,
    SchedulingConfig,
    SearchBudget,
    SearchContext,
    SearchInterrupted,
    SearchStatus,
    VariantPriorities,
)
from app.services.section_resolver import SectionGroup, SectionRef


def _obligation(
    obligation_id: str,
    course: str,
    professor: str,
    *,
    duration: int = 3,
    course_type: CourseType = CourseType.core,
    year: int = 1,
    room_type: RoomType | None = None,
    linked: tuple[str, ...] = (),
) -> ObligationInput:
    return ObligationInput(
        id=obligation_id,
        course_id=f"course-{course}",
        course_code=course,
        course_type=course_type,
        course_year=year,
        duration_hours=duration,
        professor_id=professor,
        professor_name=professor.title(),
        room_type=room_type,
        linked_program_ids=linked,
    )


def _section(section_id: str, program: str = "BSCS", year: int = 1, letter: str = "A", enrolled: int = 20) -> SectionRef:
    return SectionRef(
        id=section_id,
        program_id=f"prog-{program}",
        program_code=program,
        year=year,
        letter=letter,
        enrolled_count=enrolled,
    )


ROOM_1 = RoomInput(id="r1", code="R1")
ROOM_2 = RoomInput(id="r2", code="R2")
LAB = RoomInput(id="lab", code="LAB1", type=RoomType.laboratory)


def _run(obligations, *, rooms=(ROOM_1,), sections=None, config=None, **kwargs):
    scheduler = BacktrackingScheduler(
        obligations=obligations,
        rooms=list(rooms),
        sections=sections if sections is not None else [_section("cs-1a")],
        config=config or SchedulingConfig(),
        **kwargs,
    )
    return scheduler.run()


def _assert_consistent(result, obligations, config=None):
    config = config or SchedulingConfig()
    by_id = {obligation.id: obligation for obligation in obligations}
    for placement in result.placements:
        assert config.window_start <= placement.start_minute < placement.end_minute <= config.window_end
    for left, right in combinations(result.placements, 2):
        if left.day != right.day:
            continue
        overlap = left.start_minute < right.end_minute and right.start_minute < left.end_minute
        if not overlap:
            continue
        assert left.room_id != right.room_id
        assert by_id[left.obligation_id].professor_id != by_id[right.obligation_id].professor_id
        assert not set(left.group.section_ids) & set(right.group.section_ids)


def test_two_obligations_share_a_room_back_to_back():
    obligations = [_obligation("o1", "CS101", "ana"), _obligation("o2", "CS102", "ben")]
    result = _run(obligations)

    assert result.status == SearchStatus.solved
    assert result.successful is True
    assert result.message == "Schedule automated successfully."
    assert [(row["course"], row["day"], row["start_time"], row["end_time"]) for row in result.report] == [
        ("CS101", 1, "07:00", "10:00"),
        ("CS102", 1, "10:00", "13:00"),
    ]
    assert result.report[0]["sections"] == ["BSCS-1A"]
    assert result.report[0]["room"] == "R1"
    assert result.report[0]["professor"] == "Ana"
    assert result.report[0]["course_type"] == "Core"
    _assert_consistent(result, obligations)


def test_professor_daily_cap_spills_to_next_day():
    obligations = [_obligation(f"o{index}", f"CS10{index}", "ana") for index in range(5)]
    result = _run(obligations)

    assert result.status == SearchStatus.solved
    minutes_per_day: dict[int, int] = {}
    for placement in result.placements:
        minutes_per_day[placement.day] = minutes_per_day.get(placement.day, 0) + placement.end_minute - placement.start_minute
    assert minutes_per_day == {1: 720, 2: 180}
    assert result.report[-1]["day"] == 2
    assert result.report[-1]["start_time"] == "07:00"
    _assert_consistent(result, obligations)


def test_every_section_group_of_an_obligation_is_placed():
    sections = [
        _section("it-1a", program="BSIT", letter="A", enrolled=30),
        _section("it-1b", program="BSIT", letter="B", enrolled=30),
    ]
    obligations = [_obligation("o1", "IT101", "ana", duration=2)]
    result = _run(obligations, sections=sections)

    assert result.status == SearchStatus.solved
    assert [placement.group.section_ids for placement in result.placements] == [("it-1a",), ("it-1b",)]
    assert [(row["start_time"], row["end_time"]) for row in result.report] == [("07:00", "09:00"), ("09:00", "11:00")]
    _assert_consistent(result, obligations)


@pytest.mark.parametrize(
    ("room_count", "professor_count", "programs", "letters", "durations", "professor_cap"),
    [
        (3, 3, ("BSCS", "BSIT", "BSIS"), "A", (3, 3, 3, 3, 3, 3), 6),
        (2, 3, ("BSCS", "BSIT"), "AB", (2, 2, 2, 2, 2, 2), 4),
        (4, 5, ("BSCS", "BSIT", "BSIS"), "A", (3, 2, 3, 1, 2, 3, 2, 1, 3, 2), 6),
    ],
)
def test_dense_instances_keep_rooms_professors_and_caps_disjoint(
    room_count, professor_count, programs, letters, durations, professor_cap
):
    config = SchedulingConfig(professor_max_daily_hours=professor_cap)
    rooms = [RoomInput(id=f"r{index}", code=f"R{index}") for index in range(room_count)]
    sections = [
        _section(f"{program}-{letter}".lower(), program=program, letter=letter, enrolled=30)
        for program in programs
        for letter in letters
    ]
    obligations = [
        _obligation(f"o{index}", f"CS{index:03d}", f"prof-{index % professor_count}", duration=duration)
        for index, duration in enumerate(durations)
    ]
    result = _run(obligations, rooms=rooms, sections=sections, config=config)

    assert result.status == SearchStatus.solved
    assert result.failed == []
    assert len(result.placements) == len(obligations) * len(sections)

    by_id = {obligation.id: obligation for obligation in obligations}
    for left, right in combinations(result.placements, 2):
        if left.day != right.day or not (left.start_minute < right.end_minute and right.start_minute < left.end_minute):
            continue
        assert left.room_id != right.room_id
        assert by_id[left.obligation_id].professor_id != by_id[right.obligation_id].professor_id

    professor_minutes: dict[tuple[str, int], int] = {}
    for placement in result.placements:
        key = (by_id[placement.obligation_id].professor_id, placement.day)
        professor_minutes[key] = professor_minutes.get(key, 0) + placement.end_minute - placement.start_minute
    assert max(professor_minutes.values()) <= professor_cap * 60
    _assert_consistent(result, obligations, config)


def test_infeasible_run_places_nothing_and_names_the_blocking_obligation():
    config = SchedulingConfig(start_hour=7, end_hour=10, days=(1,))
    obligations = [_obligation("o1", "CS101", "ana"), _obligation("o2", "CS102", "ben")]
    result = _run(obligations, config=config)

    assert result.status == SearchStatus.infeasible
    assert result.successful is False
    assert result.placements == []
    assert result.report == []
    assert result.message == "Unable to generate a valid schedule with the given constraints."
    assert [failed.obligation_id for failed in result.failed] == ["o2"]
    assert result.nodes_explored == 2


def test_zero_obligations_is_an_immediate_success():
    result = _run([])
    assert result.status == SearchStatus.solved
    assert result.report == []
    assert result.nodes_explored == 0


def test_unschedulable_obligation_is_skipped_by_default():
    obligations = [_obligation("o1", "CS101", "ana"), _obligation("o2", "CS401", "ben", year=4)]
    result = _run(obligations)

    assert result.status == SearchStatus.solved
    assert len(result.placements) == 1
    assert [(failed.obligation_id, failed.reason) for failed in result.failed] == [("o2", "No sections found for year 4")]
    assert result.message == "Scheduled 1 of 2 assignations; 1 could not be scheduled."


def test_professional_course_without_linked_sections_is_reported():
    obligations = [_obligation("o1", "CS301", "ana", course_type=CourseType.professional, linked=("prog-BSIT",))]
    result = _run(obligations)

    assert result.status == SearchStatus.solved
    assert result.failed[0].reason.startswith("No sections of a linked program")


def test_abort_policy_blocks_the_whole_run():
    config = SchedulingConfig(unschedulable_policy=UnschedulablePolicy.abort)
    obligations = [_obligation("o1", "CS101", "ana"), _obligation("o2", "CS401", "ben", year=4)]
    result = _run(obligations, config=config)

    assert result.status == SearchStatus.aborted
    assert result.placements == []
    assert result.nodes_explored == 0


def test_duration_longer_than_the_working_window_is_unschedulable():
    result = _run([_obligation("o1", "CS101", "ana", duration=13)])
    assert result.status == SearchStatus.solved
    assert result.placements == []
    assert "does not fit the working window 07:00-19:00" in result.failed[0].reason


def test_node_budget_stops_the_search_without_placements():
    config = SchedulingConfig(max_nodes=3)
    obligations = [_obligation("o1", "CS101", "ana"), _obligation("o2", "CS102", "ben")]
    result = _run(obligations, config=config)

    assert result.status == SearchStatus.budget_exhausted
    assert result.placements == []
    assert result.nodes_explored == 3
    assert "search budget" in result.message


def test_cancel_event_stops_the_search():
    cancel_event = threading.Event()
    cancel_event.set()
    result = _run([_obligation("o1", "CS101", "ana")], cancel_event=cancel_event)

    assert result.status == SearchStatus.cancelled
    assert result.placements == []
    assert result.message == "Schedule generation was cancelled."


def test_search_budget_deadline_uses_the_clock():
    readings = iter([0.0, 0.5, 2.0])
    budget = SearchBudget(max_nodes=None, time_limit_seconds=1.0, clock=lambda: next(readings))

    budget.tick()
    with pytest.raises(SearchInterrupted) as exc_info:
        budget.tick()
    assert exc_info.value.status == SearchStatus.budget_exhausted
    assert budget.nodes == 2


def test_search_budget_stops_counting_at_the_node_cap():
    budget = SearchBudget(max_nodes=2, time_limit_seconds=None)
    budget.tick()
    budget.tick()
    for _ in range(2):
        with pytest.raises(SearchInterrupted) as exc_info:
            budget.tick()
        assert exc_info.value.status == SearchStatus.budget_exhausted
    assert budget.nodes == 2


def test_locked_entries_are_kept_and_cover_their_groups():
    locked = FixedPlacement(
        entry_id="e1",
        assignation_id="o1",
        room_id="r1",
        day=1,
        start_minute=420,
        end_minute=600,
        professor_id="ana",
        course_id="course-CS101",
        section_ids=("cs-1a",),
        locked=True,
    )
    obligations = [_obligation("o1", "CS101", "ana"), _obligation("o2", "CS102", "ben")]
    result = _run(obligations, fixed_placements=[locked])

    assert result.status == SearchStatus.solved
    assert [placement.obligation_id for placement in result.placements] == ["o2"]
    assert result.report[0]["start_time"] == "10:00"


def test_other_departments_entries_block_shared_professors():
    foreign = FixedPlacement(
        entry_id="e9",
        assignation_id="other",
        room_id="r2",
        day=1,
        start_minute=420,
        end_minute=600,
        professor_id="ana",
        course_id="course-MATH1",
    )
    result = _run([_obligation("o1", "CS101", "ana")], fixed_placements=[foreign])
    assert result.report[0]["start_time"] == "10:00"


def test_commit_and_undo_restore_the_exact_state():
    config = SchedulingConfig()
    context = SearchContext(config)
    context.reserve(
        FixedPlacement(
            entry_id="e1",
            assignation_id="x",
            room_id="r1",
            day=1,
            start_minute=420,
            end_minute=540,
            professor_id="ana",
            course_id="course-X",
            section_ids=("cs-1a",),
        )
    )
    before = context.snapshot()
    group = SectionGroup(sections=(_section("cs-1a"),), combined=True)
    obligation = _obligation("o1", "CS101", "ana")

    assert context.can_place(obligation, group, "r1", 1, 540, 180) is True
    context.commit(obligation, group, ROOM_1, 1, 540, 720)
    assert context.snapshot() != before
    assert context.can_place(obligation, group, "r1", 1, 600, 60) is False

    context.undo()
    assert context.snapshot() == before


def test_longest_first_places_longer_courses_first():
    obligations = [_obligation("o1", "CS101", "ana", duration=2), _obligation("o2", "CS102", "ben", duration=4)]
    result = _run(obligations, ordering=OrderingStrategy.longest_first)

    assert [row["course"] for row in result.report] == ["CS102", "CS101"]
    assert result.report[0]["start_time"] == "07:00"


def test_room_rotation_starts_from_a_different_room():
    result = _run([_obligation("o1", "CS101", "ana")], rooms=(ROOM_1, ROOM_2), ordering=OrderingStrategy.room_rotation, rotation=1)
    assert result.report[0]["room"] == "R2"


def test_shuffled_order_is_reproducible_for_a_seed():
    obligations = [_obligation(f"o{index}", f"CS1{index:02d}", f"prof{index}") for index in range(8)]

    def order(seed):
        scheduler = BacktrackingScheduler(
            obligations=obligations,
            rooms=[ROOM_1],
            sections=[_section("cs-1a")],
            config=SchedulingConfig(),
            ordering=OrderingStrategy.shuffled,
            seed=seed,
        )
        return [obligation.id for obligation in scheduler.ordered_obligations()]

    assert order(7) == order(7)
    assert sorted(order(7)) == sorted(obligation.id for obligation in obligations)


def test_priorities_reorder_obligations_and_rooms():
    obligations = [_obligation("o1", "CS101", "ana"), _obligation("o2", "CS102", "ben")]
    priorities = VariantPriorities(professor_ids=("ben",), room_ids=("r2",))
    result = _run(obligations, rooms=(ROOM_1, ROOM_2), priorities=priorities)

    assert result.report[0]["course"] == "CS102"
    assert result.report[0]["room"] == "R2"


def test_professor_priority_outranks_section_priority():
    sections = [_section("cs-1a"), _section("cs-2a", year=2)]
    obligations = [
        _obligation("o1", "CS101", "ana"),
        _obligation("o2", "CS201", "ben", year=2),
        _obligation("o3", "CS102", "cid"),
    ]
    scheduler = BacktrackingScheduler(
        obligations=obligations,
        rooms=[ROOM_1],
        sections=sections,
        config=SchedulingConfig(),
        priorities=VariantPriorities(professor_ids=("cid",), section_ids=("cs-2a",)),
    )
    assert [obligation.id for obligation in scheduler.ordered_obligations()] == ["o3", "o2", "o1"]


def test_room_type_matching_restricts_candidate_rooms():
    obligations = [_obligation("o1", "CS101", "ana", room_type=RoomType.laboratory)]

    unmatched = _run(obligations, rooms=(ROOM_1, LAB))
    assert unmatched.report[0]["room"] == "R1"

    matched = _run(obligations, rooms=(ROOM_1, LAB), config=SchedulingConfig(room_type_matching=True))
    assert matched.report[0]["room"] == "LAB1"


def test_invalid_working_window_is_rejected():
    with pytest.raises(ValueError):
        SchedulingConfig(start_hour=19, end_hour=7)
