"""Depth-first backtracking search that places every teaching obligation into a weekly grid.

The search is purely in memory: callers hand over frozen inputs (obligations,
rooms, sections, the persisted baseline) and receive a ``SearchResult``.
Nothing is written to the store from here; committing an accepted result is
the caller's job.

Enumeration order for each (obligation, section group) work item is fixed:
room, then day, then start hour. The first candidate that passes every
checker is taken and the search moves on; a dead end undoes the previous
placement and resumes that item's enumeration where it stopped.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections import defaultdict
from collections.abc import Iterator, Sequence
from copy import deepcopy
from dataclasses import dataclass, field
from enum import Enum
from time import perf_counter

from app.models.course import CourseType
from app.models.department import UnschedulablePolicy
from app.models.room import RoomType
from app.services.constraints import (
    MINUTES_PER_HOUR,
    ProfessorDayState,
    SectionDayState,
    SpacingRules,
    minutes_to_time,
    professor_available,
    room_available,
    section_available,
    student_sections_available,
)
from app.services.section_resolver import SECTION_COMBINE_LIMIT, SectionGroup, SectionRef, resolve_section_groups

logger = logging.getLogger(__name__)


class SearchStatus(str, Enum):
    solved = "solved"
    infeasible = "infeasible"
    budget_exhausted = "budget_exhausted"
    cancelled = "cancelled"
    aborted = "aborted"


class OrderingStrategy(str, Enum):
    declaration = "declaration"
    room_rotation = "room_rotation"
    longest_first = "longest_first"
    shuffled = "shuffled"


@dataclass(frozen=True)
class ObligationInput:
    id: str
    course_id: str
    course_code: str
    course_type: CourseType
    course_year: int
    duration_hours: int
    professor_id: str
    professor_name: str
    room_type: RoomType | None = None
    linked_program_ids: tuple[str, ...] = ()
    explicit_section_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class RoomInput:
    id: str
    code: str
    type: RoomType = RoomType.lecture


@dataclass(frozen=True)
class FixedPlacement:
    """A persisted entry that occupies its slot for the whole run."""

    entry_id: str
    assignation_id: str
    room_id: str
    day: int
    start_minute: int
    end_minute: int
    professor_id: str
    course_id: str
    section_ids: tuple[str, ...] = ()
    locked: bool = False


@dataclass(frozen=True)
class SchedulingConfig:
    start_hour: int = 7
    end_hour: int = 19
    professor_max_daily_hours: int = 12
    professor_max_weekly_hours: int | None = None
    student_max_daily_hours: int = 12
    days: tuple[int, ...] = (1, 2, 3, 4, 5, 6)
    combine_limit: int = SECTION_COMBINE_LIMIT
    spacing: SpacingRules | None = None
    unschedulable_policy: UnschedulablePolicy = UnschedulablePolicy.skip
    room_type_matching: bool = False
    max_nodes: int | None = 250_000
    time_limit_seconds: float | None = 30.0

    def __post_init__(self) -> None:
        if not 0 <= self.start_hour < self.end_hour <= 24:
            raise ValueError("Working hours must satisfy 0 <= start_hour < end_hour <= 24")
        if not self.days or any(day < 1 or day > 6 for day in self.days):
            raise ValueError("Days must be a non-empty subset of 1..6")
        if self.professor_max_daily_hours < 1 or self.student_max_daily_hours < 1:
            raise ValueError("Daily hour caps must be at least 1")
        if self.max_nodes is not None and self.max_nodes < 1:
            raise ValueError("max_nodes must be positive")
        if self.time_limit_seconds is not None and self.time_limit_seconds <= 0:
            raise ValueError("time_limit_seconds must be positive")

    @property
    def window_start(self) -> int:
        return self.start_hour * MINUTES_PER_HOUR

    @property
    def window_end(self) -> int:
        return self.end_hour * MINUTES_PER_HOUR


@dataclass(frozen=True)
class VariantPriorities:
    professor_ids: tuple[str, ...] = ()
    room_ids: tuple[str, ...] = ()
    section_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class Placement:
    obligation_id: str
    group: SectionGroup
    room_id: str
    room_code: str
    day: int
    start_minute: int
    end_minute: int

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start_minute)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end_minute)


@dataclass(frozen=True)
class FailedObligation:
    obligation_id: str
    course_code: str
    professor_name: str
    reason: str


@dataclass
class SearchResult:
    status: SearchStatus
    placements: list[Placement] = field(default_factory=list)
    report: list[dict] = field(default_factory=list)
    failed: list[FailedObligation] = field(default_factory=list)
    total_obligations: int = 0
    nodes_explored: int = 0
    runtime_ms: int = 0

    @property
    def successful(self) -> bool:
        return self.status == SearchStatus.solved

    @property
    def message(self) -> str:
        if self.status == SearchStatus.solved:
            if not self.failed:
                return "Schedule automated successfully."
            scheduled = self.total_obligations - len(self.failed)
            return (
                f"Scheduled {scheduled} of {self.total_obligations} assignations; "
                f"{len(self.failed)} could not be scheduled."
            )
        if self.status == SearchStatus.budget_exhausted:
            return (
                "No feasible schedule found within the search budget "
                f"({self.nodes_explored} candidates explored)."
            )
        if self.status == SearchStatus.cancelled:
            return "Schedule generation was cancelled."
        if self.status == SearchStatus.aborted:
            return "Schedule generation stopped: an assignation has no schedulable sections."
        return "Unable to generate a valid schedule with the given constraints."


class SearchInterrupted(Exception):
    def __init__(self, status: SearchStatus) -> None:
        super().__init__(status.value)
        self.status = status


class SearchBudget:
    def __init__(
        self,
        *,
        max_nodes: int | None,
        time_limit_seconds: float | None,
        cancel_event: threading.Event | None = None,
        clock=time.monotonic,
    ) -> None:
        self.max_nodes = max_nodes
        self.cancel_event = cancel_event
        self._clock = clock
        self._deadline = clock() + time_limit_seconds if time_limit_seconds is not None else None
        self.nodes = 0

    def tick(self) -> None:
        if self.max_nodes is not None and self.nodes >= self.max_nodes:
            raise SearchInterrupted(SearchStatus.budget_exhausted)
        self.nodes += 1
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise SearchInterrupted(SearchStatus.cancelled)
        if self._deadline is not None and self._clock() >= self._deadline:
            raise SearchInterrupted(SearchStatus.budget_exhausted)


class SearchContext:
    """Mutable state owned by a single search run.

    ``commit`` and ``undo`` are exact inverses; undo always reverts the most
    recent commit, so every interval list behaves as a stack.
    """

    def __init__(self, config: SchedulingConfig) -> None:
        self.config = config
        self.room_bookings: dict[tuple[str, int], list[tuple[int, int]]] = {}
        self.professor_days: dict[tuple[str, int], ProfessorDayState] = {}
        self.professor_week_minutes: dict[str, int] = {}
        self.course_days: dict[tuple[str, int], list[tuple[int, int]]] = {}
        self.section_days: dict[tuple[str, int], SectionDayState] = {}
        self.placements: list[Placement] = []
        self.report: list[dict] = []
        self._committed: list[tuple[Placement, ObligationInput]] = []

    @property
    def daily_cap(self) -> int:
        return self.config.professor_max_daily_hours * MINUTES_PER_HOUR

    @property
    def weekly_cap(self) -> int | None:
        if self.config.professor_max_weekly_hours is None:
            return None
        return self.config.professor_max_weekly_hours * MINUTES_PER_HOUR

    @property
    def student_cap(self) -> int:
        return self.config.student_max_daily_hours * MINUTES_PER_HOUR

    def reserve(self, fixed: FixedPlacement) -> None:
        self._book(
            room_id=fixed.room_id,
            professor_id=fixed.professor_id,
            course_id=fixed.course_id,
            section_ids=fixed.section_ids,
            day=fixed.day,
            start=fixed.start_minute,
            end=fixed.end_minute,
        )

    def can_place(
        self,
        obligation: ObligationInput,
        group: SectionGroup,
        room_id: str,
        day: int,
        start: int,
        duration: int,
    ) -> bool:
        if not room_available(self.room_bookings.get((room_id, day), ()), start, duration):
            return False
        professor_state = self.professor_days.get((obligation.professor_id, day)) or ProfessorDayState()
        if not professor_available(
            professor_state,
            start,
            duration,
            self.daily_cap,
            weekly_minutes=self.professor_week_minutes.get(obligation.professor_id, 0),
            weekly_cap=self.weekly_cap,
            spacing=self.config.spacing,
        ):
            return False
        if not section_available(self.course_days.get((obligation.course_id, day), ()), start, duration):
            return False
        states = [self.section_days[key] for key in ((sid, day) for sid in group.section_ids) if key in self.section_days]
        return student_sections_available(states, start, duration, self.student_cap)

    def commit(
        self,
        obligation: ObligationInput,
        group: SectionGroup,
        room: RoomInput,
        day: int,
        start: int,
        end: int,
    ) -> Placement:
        placement = Placement(
            obligation_id=obligation.id,
            group=group,
            room_id=room.id,
            room_code=room.code,
            day=day,
            start_minute=start,
            end_minute=end,
        )
        self._book(
            room_id=room.id,
            professor_id=obligation.professor_id,
            course_id=obligation.course_id,
            section_ids=group.section_ids,
            day=day,
            start=start,
            end=end,
        )
        self.placements.append(placement)
        self.report.append(report_row(obligation, placement))
        self._committed.append((placement, obligation))
        return placement

    def undo(self) -> Placement:
        placement, obligation = self._committed.pop()
        self.placements.pop()
        self.report.pop()
        self._release(
            room_id=placement.room_id,
            professor_id=obligation.professor_id,
            course_id=obligation.course_id,
            section_ids=placement.group.section_ids,
            day=placement.day,
            start=placement.start_minute,
            end=placement.end_minute,
        )
        return placement

    def snapshot(self) -> dict:
        return deepcopy(
            {
                "rooms": self.room_bookings,
                "professors": self.professor_days,
                "professor_week": self.professor_week_minutes,
                "courses": self.course_days,
                "sections": self.section_days,
                "placements": self.placements,
                "report": self.report,
            }
        )

    def _book(
        self,
        *,
        room_id: str,
        professor_id: str,
        course_id: str,
        section_ids: Sequence[str],
        day: int,
        start: int,
        end: int,
    ) -> None:
        duration = end - start
        self.room_bookings.setdefault((room_id, day), []).append((start, end))
        professor_state = self.professor_days.setdefault((professor_id, day), ProfessorDayState())
        professor_state.minutes += duration
        professor_state.intervals.append((start, end))
        self.professor_week_minutes[professor_id] = self.professor_week_minutes.get(professor_id, 0) + duration
        self.course_days.setdefault((course_id, day), []).append((start, end))
        for section_id in section_ids:
            section_state = self.section_days.setdefault((section_id, day), SectionDayState())
            section_state.minutes += duration
            section_state.intervals.append((start, end))

    def _release(
        self,
        *,
        room_id: str,
        professor_id: str,
        course_id: str,
        section_ids: Sequence[str],
        day: int,
        start: int,
        end: int,
    ) -> None:
        duration = end - start
        _pop_interval(self.room_bookings, (room_id, day), (start, end))
        professor_state = self.professor_days[(professor_id, day)]
        professor_state.minutes -= duration
        professor_state.intervals.pop()
        if not professor_state.intervals:
            del self.professor_days[(professor_id, day)]
        self.professor_week_minutes[professor_id] -= duration
        if self.professor_week_minutes[professor_id] == 0:
            del self.professor_week_minutes[professor_id]
        _pop_interval(self.course_days, (course_id, day), (start, end))
        for section_id in section_ids:
            section_state = self.section_days[(section_id, day)]
            section_state.minutes -= duration
            section_state.intervals.pop()
            if not section_state.intervals:
                del self.section_days[(section_id, day)]


def _pop_interval(index: dict, key, interval: tuple[int, int]) -> None:
    bucket = index[key]
    popped = bucket.pop()
    if popped != interval:
        raise RuntimeError(f"Search state out of order: expected {interval}, found {popped}")
    if not bucket:
        del index[key]


def report_row(obligation: ObligationInput, placement: Placement) -> dict:
    return {
        "professor": obligation.professor_name,
        "course": obligation.course_code,
        "course_type": obligation.course_type.value,
        "sections": placement.group.labels,
        "room": placement.room_code,
        "day": placement.day,
        "start_time": placement.start_time,
        "end_time": placement.end_time,
    }


@dataclass(frozen=True)
class _WorkItem:
    obligation: ObligationInput
    group: SectionGroup

    @property
    def duration(self) -> int:
        return self.obligation.duration_hours * MINUTES_PER_HOUR


class BacktrackingScheduler:
    def __init__(
        self,
        *,
        obligations: Sequence[ObligationInput],
        rooms: Sequence[RoomInput],
        sections: Sequence[SectionRef],
        config: SchedulingConfig,
        fixed_placements: Sequence[FixedPlacement] = (),
        ordering: OrderingStrategy = OrderingStrategy.declaration,
        priorities: VariantPriorities | None = None,
        rotation: int = 0,
        seed: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.obligations = list(obligations)
        self.rooms = list(rooms)
        self.sections = list(sections)
        self.config = config
        self.fixed_placements = list(fixed_placements)
        self.ordering = ordering
        self.priorities = priorities or VariantPriorities()
        self.rotation = rotation
        self.seed = seed
        self.cancel_event = cancel_event
        self._groups_cache: dict[str, list[SectionGroup]] = {}
        self._deepest_dead_end = -1

    def section_groups(self, obligation: ObligationInput) -> list[SectionGroup]:
        cached = self._groups_cache.get(obligation.id)
        if cached is None:
            cached = resolve_section_groups(
                course_type=obligation.course_type,
                course_year=obligation.course_year,
                sections=self.sections,
                linked_program_ids=obligation.linked_program_ids,
                explicit_section_ids=obligation.explicit_section_ids,
                combine_limit=self.config.combine_limit,
            )
            self._groups_cache[obligation.id] = cached
        return cached

    def ordered_obligations(self) -> list[ObligationInput]:
        ordered = list(self.obligations)
        if self.ordering == OrderingStrategy.longest_first:
            ordered.sort(key=lambda item: -item.duration_hours)
        elif self.ordering == OrderingStrategy.shuffled:
            random.Random(self.seed).shuffle(ordered)

        if self.priorities.section_ids:
            wanted = set(self.priorities.section_ids)
            ordered.sort(
                key=lambda item: not any(
                    wanted.intersection(group.section_ids) for group in self.section_groups(item)
                )
            )
        if self.priorities.professor_ids:
            rank = {professor_id: index for index, professor_id in enumerate(self.priorities.professor_ids)}
            ordered.sort(key=lambda item: rank.get(item.professor_id, len(rank)))
        return ordered

    def ordered_rooms(self) -> list[RoomInput]:
        rooms = list(self.rooms)
        if self.ordering == OrderingStrategy.room_rotation and rooms:
            offset = self.rotation % len(rooms)
            rooms = rooms[offset:] + rooms[:offset]
        if self.priorities.room_ids:
            rank = {room_id: index for index, room_id in enumerate(self.priorities.room_ids)}
            rooms.sort(key=lambda room: rank.get(room.id, len(rank)))
        return rooms

    def locked_coverage(self) -> dict[str, set[str]]:
        """Sections already served by a locked entry, keyed by obligation id."""
        covered: dict[str, set[str]] = defaultdict(set)
        for fixed in self.fixed_placements:
            if fixed.locked:
                covered[fixed.assignation_id].update(fixed.section_ids)
        return covered

    def _unschedulable_reason(self, obligation: ObligationInput, groups: list[SectionGroup]) -> str | None:
        window_hours = self.config.end_hour - self.config.start_hour
        if obligation.duration_hours < 1 or obligation.duration_hours > window_hours:
            return (
                f"Course duration of {obligation.duration_hours} hours does not fit the working window "
                f"{self.config.start_hour:02d}:00-{self.config.end_hour:02d}:00"
            )
        if not groups:
            if obligation.course_type == CourseType.professional and not obligation.explicit_section_ids:
                return f"No sections of a linked program in year {obligation.course_year} for professional course"
            return f"No sections found for year {obligation.course_year}"
        return None

    def _build_work_items(
        self,
        obligations: Sequence[ObligationInput],
    ) -> tuple[list[_WorkItem], list[FailedObligation]]:
        covered = self.locked_coverage()
        items: list[_WorkItem] = []
        failed: list[FailedObligation] = []
        for obligation in obligations:
            groups = self.section_groups(obligation)
            reason = self._unschedulable_reason(obligation, groups)
            if reason is not None:
                failed.append(
                    FailedObligation(
                        obligation_id=obligation.id,
                        course_code=obligation.course_code,
                        professor_name=obligation.professor_name,
                        reason=reason,
                    )
                )
                continue
            locked_sections = covered.get(obligation.id, set())
            for group in groups:
                if locked_sections.issuperset(group.section_ids):
                    continue
                items.append(_WorkItem(obligation=obligation, group=group))
        return items, failed

    def pending_groups(self) -> list[tuple[ObligationInput, SectionGroup]]:
        """The (obligation, group) pairs a complete schedule must place, in declaration order."""
        items, _ = self._build_work_items(self.obligations)
        return [(item.obligation, item.group) for item in items]

    def _rooms_for(self, obligation: ObligationInput, rooms: list[RoomInput]) -> list[RoomInput]:
        if self.config.room_type_matching and obligation.room_type is not None:
            return [room for room in rooms if room.type == obligation.room_type]
        return rooms

    def _candidates(
        self,
        context: SearchContext,
        item: _WorkItem,
        rooms: list[RoomInput],
        budget: SearchBudget,
    ) -> Iterator[tuple[RoomInput, int, int]]:
        duration = item.duration
        last_start_hour = self.config.end_hour - item.obligation.duration_hours
        for room in self._rooms_for(item.obligation, rooms):
            for day in self.config.days:
                for hour in range(self.config.start_hour, last_start_hour + 1):
                    budget.tick()
                    start = hour * MINUTES_PER_HOUR
                    if context.can_place(item.obligation, item.group, room.id, day, start, duration):
                        yield room, day, start

    def _search(self, context: SearchContext, items: list[_WorkItem], budget: SearchBudget) -> SearchStatus:
        rooms = self.ordered_rooms()
        iterators: list[Iterator[tuple[RoomInput, int, int]] | None] = [None] * len(items)
        index = 0
        while index < len(items):
            item = items[index]
            iterator = iterators[index]
            if iterator is None:
                iterator = self._candidates(context, item, rooms, budget)
                iterators[index] = iterator
            candidate = next(iterator, None)
            if candidate is not None:
                room, day, start = candidate
                context.commit(item.obligation, item.group, room, day, start, start + item.duration)
                index += 1
                continue

            iterators[index] = None
            self._deepest_dead_end = max(self._deepest_dead_end, index)
            if index == 0:
                return SearchStatus.infeasible
            index -= 1
            context.undo()
        return SearchStatus.solved

    def run(self) -> SearchResult:
        started = perf_counter()
        context = SearchContext(self.config)
        for fixed in self.fixed_placements:
            context.reserve(fixed)

        obligations = self.ordered_obligations()
        items, failed = self._build_work_items(obligations)
        result = SearchResult(status=SearchStatus.solved, failed=failed, total_obligations=len(obligations))

        if failed and self.config.unschedulable_policy == UnschedulablePolicy.abort:
            result.status = SearchStatus.aborted
            result.runtime_ms = int((perf_counter() - started) * 1000)
            return result

        budget = SearchBudget(
            max_nodes=self.config.max_nodes,
            time_limit_seconds=self.config.time_limit_seconds,
            cancel_event=self.cancel_event,
        )
        try:
            status = self._search(context, items, budget)
        except SearchInterrupted as exc:
            status = exc.status
            logger.warning(
                "SEARCH INTERRUPTED | status=%s | nodes=%s | placed=%s/%s",
                status.value,
                budget.nodes,
                len(context.placements),
                len(items),
            )

        result.status = status
        result.nodes_explored = budget.nodes
        if status == SearchStatus.solved:
            result.placements = list(context.placements)
            result.report = list(context.report)
        elif status == SearchStatus.infeasible and 0 <= self._deepest_dead_end < len(items):
            blocking = items[self._deepest_dead_end].obligation
            result.failed.append(
                FailedObligation(
                    obligation_id=blocking.id,
                    course_code=blocking.course_code,
                    professor_name=blocking.professor_name,
                    reason="No room, day and time satisfies the room, professor and section constraints",
                )
            )
        result.runtime_ms = int((perf_counter() - started) * 1000)
        return result
