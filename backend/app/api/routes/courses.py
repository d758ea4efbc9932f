from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.api.deps import get_actor, get_db
from app.models.course import Course
from app.models.program import Program
from app.schemas.course import CourseCreate, CourseOut, CourseProgramsUpdate, CourseUpdate
from app.services.audit import log_activity

router = APIRouter()


def _load_programs(db: Session, program_ids: list[str]) -> list[Program]:
    if not program_ids:
        return []
    programs = list(db.execute(select(Program).where(Program.id.in_(program_ids))).scalars())
    missing = sorted(set(program_ids) - {program.id for program in programs})
    if missing:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Program {missing[0]} not found")
    return programs


def _get_course(db: Session, course_id: str) -> Course:
    course = db.execute(
        select(Course).where(Course.id == course_id).options(selectinload(Course.programs))
    ).scalar_one_or_none()
    if course is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    return course


@router.get("/courses", response_model=list[CourseOut])
def list_courses(db: Session = Depends(get_db)) -> list[CourseOut]:
    query = select(Course).options(selectinload(Course.programs)).order_by(Course.code)
    return list(db.execute(query).scalars())


@router.post("/courses", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
def create_course(
    payload: CourseCreate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> CourseOut:
    existing = db.execute(select(Course).where(Course.code == payload.code)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Course code already exists")
    course = Course(**payload.model_dump(exclude={"program_ids"}))
    course.programs = _load_programs(db, payload.program_ids)
    db.add(course)
    db.flush()
    log_activity(db, actor=actor, action="course.create", entity_type="course", entity_id=course.id)
    db.commit()
    return _get_course(db, course.id)


@router.put("/courses/{course_id}", response_model=CourseOut)
def update_course(
    course_id: str,
    payload: CourseUpdate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> CourseOut:
    course = _get_course(db, course_id)
    data = payload.model_dump(exclude_unset=True)
    if "code" in data:
        data["code"] = data["code"].strip().upper()
        existing = db.execute(
            select(Course).where(Course.code == data["code"], Course.id != course_id)
        ).scalar_one_or_none()
        if existing:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Course code already exists")

    for key, value in data.items():
        setattr(course, key, value)
    if data:
        log_activity(db, actor=actor, action="course.update", entity_type="course", entity_id=course.id)
    db.commit()
    return _get_course(db, course.id)


@router.put("/courses/{course_id}/programs", response_model=CourseOut)
def set_course_programs(
    course_id: str,
    payload: CourseProgramsUpdate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> CourseOut:
    course = _get_course(db, course_id)
    course.programs = _load_programs(db, payload.program_ids)
    log_activity(
        db,
        actor=actor,
        action="course.programs.update",
        entity_type="course",
        entity_id=course.id,
        details={"program_ids": payload.program_ids},
    )
    db.commit()
    return _get_course(db, course.id)


@router.delete("/courses/{course_id}")
def delete_course(
    course_id: str,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> dict:
    course = _get_course(db, course_id)
    log_activity(db, actor=actor, action="course.delete", entity_type="course", entity_id=course.id, details={"code": course.code})
    db.delete(course)
    db.commit()
    return {"success": True}
