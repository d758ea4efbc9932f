from app.services.constraints import (
    ProfessorDayState,
    SectionDayState,
    SpacingRules,
    intervals_overlap,
    minutes_to_time,
    professor_available,
    room_available,
    section_available,
    student_sections_available,
)


def test_back_to_back_intervals_do_not_overlap():
    assert intervals_overlap(420, 540, 540, 600) is False
    assert intervals_overlap(420, 541, 540, 600) is True


def test_minutes_to_time_formats_hours_and_minutes():
    assert minutes_to_time(420) == "07:00"
    assert minutes_to_time(13 * 60 + 30) == "13:30"


def test_room_available_rejects_overlap_only():
    bookings = [(480, 600)]
    assert room_available(bookings, 600, 60) is True
    assert room_available(bookings, 540, 60) is False
    assert room_available([], 420, 180) is True


def test_professor_daily_cap_is_inclusive():
    state = ProfessorDayState(minutes=600, intervals=[(420, 1020)])
    assert professor_available(state, 1020, 120, daily_cap=720) is True
    assert professor_available(state, 1020, 180, daily_cap=720) is False


def test_professor_overlap_is_rejected():
    state = ProfessorDayState(minutes=60, intervals=[(480, 540)])
    assert professor_available(state, 510, 60, daily_cap=720) is False


def test_professor_weekly_cap_when_configured():
    state = ProfessorDayState()
    assert professor_available(state, 420, 120, 720, weekly_minutes=1200, weekly_cap=1320) is True
    assert professor_available(state, 420, 180, 720, weekly_minutes=1200, weekly_cap=1320) is False
    assert professor_available(state, 420, 180, 720, weekly_minutes=5000, weekly_cap=None) is True


def test_spacing_rules_enforce_break_and_gap():
    rules = SpacingRules(min_break_minutes=30, max_gap_minutes=120)
    state = ProfessorDayState(minutes=60, intervals=[(480, 540)])

    assert professor_available(state, 540, 60, 720, spacing=rules) is False
    assert professor_available(state, 570, 60, 720, spacing=rules) is True
    assert professor_available(state, 720, 60, 720, spacing=rules) is False
    assert professor_available(ProfessorDayState(), 720, 60, 720, spacing=rules) is True


def test_section_available_checks_course_intervals():
    assert section_available([(420, 540)], 480, 60) is False
    assert section_available([(420, 540)], 540, 60) is True


def test_student_sections_block_overlap_and_cap():
    busy = SectionDayState(minutes=60, intervals=[(420, 480)])
    full = SectionDayState(minutes=660, intervals=[(420, 1080)])
    assert student_sections_available([busy], 450, 60, daily_cap=720) is False
    assert student_sections_available([busy], 480, 60, daily_cap=720) is True
    assert student_sections_available([full], 1080, 120, daily_cap=720) is False
