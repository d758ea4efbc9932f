"""Resolve the student sections a course must be taught to and group them into schedulable units.

Core courses target every section of the course year regardless of program.
Professional courses only target sections whose program is linked to the course.
Sections sharing a (program, year) pair are combined into a single group when
their enrollment fits within the combine limit; otherwise each section is
scheduled on its own.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from app.models.course import CourseType

SECTION_COMBINE_LIMIT = 50


@dataclass(frozen=True)
class SectionRef:
    id: str
    program_id: str
    program_code: str
    year: int
    letter: str
    enrolled_count: int

    @property
    def label(self) -> str:
        return f"{self.program_code}-{self.year}{self.letter}"


@dataclass(frozen=True)
class SectionGroup:
    sections: tuple[SectionRef, ...]
    combined: bool

    @property
    def section_ids(self) -> tuple[str, ...]:
        return tuple(section.id for section in self.sections)

    @property
    def total_enrolled(self) -> int:
        return sum(section.enrolled_count for section in self.sections)

    @property
    def labels(self) -> list[str]:
        return [section.label for section in self.sections]


def _sort_key(section: SectionRef) -> tuple[str, int, str, str]:
    return (section.program_code, section.year, section.letter, section.id)


def eligible_sections(
    course_type: CourseType,
    course_year: int,
    sections: Iterable[SectionRef],
    linked_program_ids: Iterable[str] = (),
) -> list[SectionRef]:
    same_year = [section for section in sections if section.year == course_year]
    if course_type == CourseType.core:
        return sorted(same_year, key=_sort_key)
    if course_type == CourseType.professional:
        allowed = set(linked_program_ids)
        return sorted((section for section in same_year if section.program_id in allowed), key=_sort_key)
    return []


def group_sections(
    sections: Iterable[SectionRef],
    combine_limit: int = SECTION_COMBINE_LIMIT,
) -> list[SectionGroup]:
    buckets: dict[tuple[str, int], list[SectionRef]] = {}
    for section in sorted(sections, key=_sort_key):
        buckets.setdefault((section.program_id, section.year), []).append(section)

    groups: list[SectionGroup] = []
    for members in buckets.values():
        total = sum(section.enrolled_count for section in members)
        if total <= combine_limit:
            groups.append(SectionGroup(sections=tuple(members), combined=True))
            continue
        groups.extend(SectionGroup(sections=(section,), combined=False) for section in members)
    return groups


def resolve_section_groups(
    *,
    course_type: CourseType,
    course_year: int,
    sections: Sequence[SectionRef],
    linked_program_ids: Iterable[str] = (),
    explicit_section_ids: Sequence[str] = (),
    combine_limit: int = SECTION_COMBINE_LIMIT,
) -> list[SectionGroup]:
    """Return the section groups for one obligation; an empty list means it cannot be scheduled."""
    if explicit_section_ids:
        wanted = set(explicit_section_ids)
        targets = [section for section in sections if section.id in wanted]
    else:
        targets = eligible_sections(course_type, course_year, sections, linked_program_ids)
    if not targets:
        return []
    return group_sections(targets, combine_limit)
