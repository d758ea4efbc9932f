"""Seed a demo department for the scheduler.

Run:
  PYTHONPATH=backend python scripts/seed_demo_department.py
"""

from __future__ import annotations

import logging
import os

from sqlalchemy import select

from app.db.bootstrap import ensure_schema
from app.db.session import SessionLocal
from app.models.assignation import Assignation
from app.models.course import Course, CourseType
from app.models.department import Department, DepartmentSettings
from app.models.professor import Professor
from app.models.program import Program, Section
from app.models.room import Room, RoomType

logger = logging.getLogger("seed_demo_department")

SCHOOL_YEAR = os.getenv("SEED_SCHOOL_YEAR", "2026-2027").strip() or "2026-2027"
SEMESTER = os.getenv("SEED_SEMESTER", "1").strip() or "1"

DEPARTMENT = {"code": "CS", "name": "Computer Science"}
PROGRAMS = [
    {"code": "BSCS", "name": "BS Computer Science", "sections": {1: "AB", 2: "A"}},
    {"code": "BSIT", "name": "BS Information Technology", "sections": {1: "A"}},
]
ROOMS = [
    {"code": "CS-101", "building": "Main", "floor": "1", "type": RoomType.lecture},
    {"code": "CS-102", "building": "Main", "floor": "1", "type": RoomType.lecture},
    {"code": "CS-LAB1", "building": "Annex", "floor": "2", "type": RoomType.laboratory},
]
COURSES = [
    {"code": "CS101", "description": "Introduction to Programming", "duration": 3, "type": CourseType.core, "year": 1},
    {"code": "CS102", "description": "Discrete Structures", "duration": 2, "type": CourseType.core, "year": 1},
    {
        "code": "CS201",
        "description": "Data Structures Laboratory",
        "duration": 3,
        "type": CourseType.core,
        "year": 2,
        "room_type": RoomType.laboratory,
    },
    {
        "code": "IT110",
        "description": "Web Systems",
        "duration": 2,
        "type": CourseType.professional,
        "year": 1,
        "programs": ["BSIT"],
    },
]
PROFESSORS = ["Ana Reyes", "Ben Cruz", "Carla Santos"]
ASSIGNATIONS = [
    ("CS101", "Ana Reyes"),
    ("CS102", "Ben Cruz"),
    ("CS201", "Carla Santos"),
    ("IT110", "Ben Cruz"),
]


def _get_or_create_department(db) -> Department:
    department = db.execute(select(Department).where(Department.code == DEPARTMENT["code"])).scalar_one_or_none()
    if department is None:
        department = Department(**DEPARTMENT)
        department.settings = DepartmentSettings(start_hour=7, end_hour=19, room_type_matching=True)
        db.add(department)
        db.flush()
    return department


def seed() -> dict[str, int]:
    ensure_schema()
    counts = {"programs": 0, "sections": 0, "rooms": 0, "courses": 0, "professors": 0, "assignations": 0}

    with SessionLocal() as db:
        department = _get_or_create_department(db)

        programs: dict[str, Program] = {}
        for item in PROGRAMS:
            program = db.execute(select(Program).where(Program.code == item["code"])).scalar_one_or_none()
            if program is None:
                program = Program(code=item["code"], name=item["name"], department_id=department.id)
                db.add(program)
                db.flush()
                counts["programs"] += 1
            programs[program.code] = program
            for year, letters in item["sections"].items():
                for letter in letters:
                    exists = db.execute(
                        select(Section.id).where(
                            Section.program_id == program.id,
                            Section.year == year,
                            Section.letter == letter,
                        )
                    ).first()
                    if exists is None:
                        db.add(Section(program_id=program.id, year=year, letter=letter, enrolled_count=35))
                        counts["sections"] += 1

        for item in ROOMS:
            if db.execute(select(Room.id).where(Room.code == item["code"])).first() is None:
                db.add(Room(**item))
                counts["rooms"] += 1

        courses: dict[str, Course] = {}
        for item in COURSES:
            payload = dict(item)
            linked = payload.pop("programs", [])
            course = db.execute(select(Course).where(Course.code == payload["code"])).scalar_one_or_none()
            if course is None:
                course = Course(**payload)
                course.programs = [programs[code] for code in linked]
                db.add(course)
                counts["courses"] += 1
            courses[course.code] = course

        professors: dict[str, Professor] = {}
        for name in PROFESSORS:
            professor = db.execute(
                select(Professor).where(Professor.name == name, Professor.department_id == department.id)
            ).scalar_one_or_none()
            if professor is None:
                professor = Professor(name=name, department_id=department.id)
                db.add(professor)
                counts["professors"] += 1
            professors[name] = professor

        db.flush()
        for course_code, professor_name in ASSIGNATIONS:
            course = courses[course_code]
            professor = professors[professor_name]
            exists = db.execute(
                select(Assignation.id).where(
                    Assignation.course_id == course.id,
                    Assignation.professor_id == professor.id,
                    Assignation.school_year == SCHOOL_YEAR,
                    Assignation.semester == SEMESTER,
                )
            ).first()
            if exists is None:
                db.add(
                    Assignation(
                        course_id=course.id,
                        professor_id=professor.id,
                        department_id=department.id,
                        school_year=SCHOOL_YEAR,
                        semester=SEMESTER,
                    )
                )
                counts["assignations"] += 1

        db.commit()
        logger.info("SEED COMPLETE | department=%s | created=%s", department.code, counts)
        return counts


if __name__ == "__main__":
    created = seed()
    print(f"Seeded department {DEPARTMENT['code']} for {SCHOOL_YEAR} semester {SEMESTER}: {created}")
