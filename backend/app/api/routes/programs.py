from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.api.deps import get_actor, get_db
from app.models.department import Department
from app.models.program import Program, Section
from app.schemas.program import ProgramCreate, ProgramOut, SectionCreate, SectionOut
from app.services.audit import log_activity

router = APIRouter()


@router.get("/programs", response_model=list[ProgramOut])
def list_programs(department_id: str | None = None, db: Session = Depends(get_db)) -> list[ProgramOut]:
    query = select(Program).order_by(Program.code)
    if department_id:
        query = query.where(Program.department_id == department_id)
    return list(db.execute(query).scalars())


@router.post("/programs", response_model=ProgramOut, status_code=status.HTTP_201_CREATED)
def create_program(
    payload: ProgramCreate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> ProgramOut:
    if db.get(Department, payload.department_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
    existing = db.execute(select(Program).where(Program.code == payload.code)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Program code already exists")
    program = Program(**payload.model_dump())
    db.add(program)
    db.flush()
    log_activity(db, actor=actor, action="program.create", entity_type="program", entity_id=program.id)
    db.commit()
    db.refresh(program)
    return program


@router.get("/programs/{program_id}/sections", response_model=list[SectionOut])
def list_sections(program_id: str, db: Session = Depends(get_db)) -> list[SectionOut]:
    if db.get(Program, program_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Program not found")
    query = (
        select(Section)
        .where(Section.program_id == program_id)
        .options(selectinload(Section.program))
        .order_by(Section.year, Section.letter)
    )
    return list(db.execute(query).scalars())


@router.post("/programs/{program_id}/sections", response_model=SectionOut, status_code=status.HTTP_201_CREATED)
def create_section(
    program_id: str,
    payload: SectionCreate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> SectionOut:
    program = db.get(Program, program_id)
    if program is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Program not found")
    existing = db.execute(
        select(Section).where(
            Section.program_id == program_id,
            Section.year == payload.year,
            Section.letter == payload.letter,
        )
    ).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Section already exists for this program and year")
    section = Section(program_id=program.id, **payload.model_dump())
    db.add(section)
    db.flush()
    log_activity(
        db,
        actor=actor,
        action="section.create",
        entity_type="section",
        entity_id=section.id,
        details={"program": program.code, "year": payload.year, "letter": payload.letter},
    )
    db.commit()
    db.refresh(section)
    return section


@router.delete("/programs/sections/{section_id}")
def delete_section(
    section_id: str,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> dict:
    section = db.get(Section, section_id)
    if section is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Section not found")
    log_activity(db, actor=actor, action="section.delete", entity_type="section", entity_id=section.id)
    db.delete(section)
    db.commit()
    return {"success": True}
