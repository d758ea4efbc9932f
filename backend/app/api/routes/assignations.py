from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.api.deps import get_actor, get_db
from app.models.assignation import Assignation
from app.models.course import Course
from app.models.department import Department
from app.models.professor import Professor
from app.models.program import Section
from app.schemas.assignation import AssignationCreate, AssignationOut
from app.services.audit import log_activity

router = APIRouter()


def to_assignation_out(assignation: Assignation) -> AssignationOut:
    return AssignationOut(
        id=assignation.id,
        course_id=assignation.course_id,
        professor_id=assignation.professor_id,
        department_id=assignation.department_id,
        school_year=assignation.school_year,
        semester=assignation.semester,
        course_code=assignation.course.code,
        professor_name=assignation.professor.name,
        section_ids=[section.id for section in assignation.target_sections],
    )


def _query():
    return select(Assignation).options(
        selectinload(Assignation.course),
        selectinload(Assignation.professor),
        selectinload(Assignation.target_sections),
    )


@router.get("/assignations", response_model=list[AssignationOut])
def list_assignations(
    department_id: str | None = None,
    school_year: str | None = None,
    semester: str | None = None,
    db: Session = Depends(get_db),
) -> list[AssignationOut]:
    query = _query().order_by(Assignation.created_at, Assignation.id)
    if department_id:
        query = query.where(Assignation.department_id == department_id)
    if school_year:
        query = query.where(Assignation.school_year == school_year)
    if semester:
        query = query.where(Assignation.semester == semester)
    return [to_assignation_out(item) for item in db.execute(query).scalars()]


@router.post("/assignations", response_model=AssignationOut, status_code=status.HTTP_201_CREATED)
def create_assignation(
    payload: AssignationCreate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> AssignationOut:
    if db.get(Department, payload.department_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
    if db.get(Course, payload.course_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    if db.get(Professor, payload.professor_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Professor not found")

    sections: list[Section] = []
    if payload.section_ids:
        sections = list(db.execute(select(Section).where(Section.id.in_(payload.section_ids))).scalars())
        if len(sections) != len(set(payload.section_ids)):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="One or more sections not found")

    assignation = Assignation(**payload.model_dump(exclude={"section_ids"}))
    assignation.target_sections = sections
    db.add(assignation)
    db.flush()
    log_activity(db, actor=actor, action="assignation.create", entity_type="assignation", entity_id=assignation.id)
    db.commit()
    created = db.execute(_query().where(Assignation.id == assignation.id)).scalar_one()
    return to_assignation_out(created)


@router.delete("/assignations/{assignation_id}")
def delete_assignation(
    assignation_id: str,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> dict:
    assignation = db.get(Assignation, assignation_id)
    if assignation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignation not found")
    log_activity(db, actor=actor, action="assignation.delete", entity_type="assignation", entity_id=assignation.id)
    db.delete(assignation)
    db.commit()
    return {"success": True}
