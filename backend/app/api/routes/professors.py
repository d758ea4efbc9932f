from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_actor, get_db
from app.models.department import Department
from app.models.professor import Professor
from app.schemas.professor import ProfessorCreate, ProfessorOut
from app.services.audit import log_activity

router = APIRouter()


@router.get("/professors", response_model=list[ProfessorOut])
def list_professors(department_id: str | None = None, db: Session = Depends(get_db)) -> list[ProfessorOut]:
    query = select(Professor).order_by(Professor.name)
    if department_id:
        query = query.where(Professor.department_id == department_id)
    return list(db.execute(query).scalars())


@router.post("/professors", response_model=ProfessorOut, status_code=status.HTTP_201_CREATED)
def create_professor(
    payload: ProfessorCreate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> ProfessorOut:
    if payload.department_id and db.get(Department, payload.department_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
    professor = Professor(**payload.model_dump())
    db.add(professor)
    db.flush()
    log_activity(db, actor=actor, action="professor.create", entity_type="professor", entity_id=professor.id)
    db.commit()
    db.refresh(professor)
    return professor


@router.delete("/professors/{professor_id}")
def delete_professor(
    professor_id: str,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> dict:
    professor = db.get(Professor, professor_id)
    if professor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Professor not found")
    log_activity(db, actor=actor, action="professor.delete", entity_type="professor", entity_id=professor.id)
    db.delete(professor)
    db.commit()
    return {"success": True}
