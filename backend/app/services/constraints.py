from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

MINUTES_PER_HOUR = 60


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    return start_a < end_b and start_b < end_a


def minutes_to_time(value: int) -> str:
    hours = value // 60
    minutes = value % 60
    return f"{hours:02d}:{minutes:02d}"


@dataclass
class ProfessorDayState:
    minutes: int = 0
    intervals: list[tuple[int, int]] = field(default_factory=list)


@dataclass
class SectionDayState:
    minutes: int = 0
    intervals: list[tuple[int, int]] = field(default_factory=list)


@dataclass(frozen=True)
class SpacingRules:
    """Minimum break between a professor's blocks and the largest idle gap allowed on one day."""

    min_break_minutes: int
    max_gap_minutes: int


def _overlaps_any(intervals: Iterable[tuple[int, int]], start: int, end: int) -> bool:
    return any(intervals_overlap(start, end, booked_start, booked_end) for booked_start, booked_end in intervals)


def room_available(bookings: Iterable[tuple[int, int]], start: int, duration: int) -> bool:
    return not _overlaps_any(bookings, start, start + duration)


def _respects_spacing(intervals: list[tuple[int, int]], start: int, end: int, rules: SpacingRules) -> bool:
    if not intervals:
        return True
    nearest_gap: int | None = None
    for booked_start, booked_end in intervals:
        gap = max(booked_start - end, start - booked_end)
        if gap < rules.min_break_minutes:
            return False
        if nearest_gap is None or gap < nearest_gap:
            nearest_gap = gap
    return nearest_gap is None or nearest_gap <= rules.max_gap_minutes


def professor_available(
    state: ProfessorDayState,
    start: int,
    duration: int,
    daily_cap: int,
    *,
    weekly_minutes: int = 0,
    weekly_cap: int | None = None,
    spacing: SpacingRules | None = None,
) -> bool:
    if state.minutes + duration > daily_cap:
        return False
    if weekly_cap is not None and weekly_minutes + duration > weekly_cap:
        return False
    end = start + duration
    if _overlaps_any(state.intervals, start, end):
        return False
    if spacing is not None and not _respects_spacing(state.intervals, start, end, spacing):
        return False
    return True


def section_available(course_intervals: Iterable[tuple[int, int]], start: int, duration: int) -> bool:
    """The course has no other group booked over this window on the same day."""
    return not _overlaps_any(course_intervals, start, start + duration)


def student_sections_available(
    states: Iterable[SectionDayState],
    start: int,
    duration: int,
    daily_cap: int,
) -> bool:
    end = start + duration
    for state in states:
        if state.minutes + duration > daily_cap:
            return False
        if _overlaps_any(state.intervals, start, end):
            return False
    return True
