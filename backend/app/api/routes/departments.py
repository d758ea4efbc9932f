from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_actor, get_db
from app.models.department import Department, DepartmentSettings
from app.schemas.department import DepartmentCreate, DepartmentOut
from app.schemas.settings import DepartmentSettingsOut, DepartmentSettingsUpdate
from app.services.audit import log_activity

router = APIRouter()


def _get_department(db: Session, department_id: str) -> Department:
    department = db.get(Department, department_id)
    if department is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
    return department


@router.get("/departments", response_model=list[DepartmentOut])
def list_departments(db: Session = Depends(get_db)) -> list[DepartmentOut]:
    return list(db.execute(select(Department).order_by(Department.code)).scalars())


@router.post("/departments", response_model=DepartmentOut, status_code=status.HTTP_201_CREATED)
def create_department(
    payload: DepartmentCreate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> DepartmentOut:
    existing = db.execute(select(Department).where(Department.code == payload.code)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Department code already exists")
    department = Department(code=payload.code, name=payload.name)
    settings_data = payload.settings.model_dump() if payload.settings is not None else {}
    department.settings = DepartmentSettings(**settings_data)
    db.add(department)
    db.flush()
    log_activity(db, actor=actor, action="department.create", entity_type="department", entity_id=department.id)
    db.commit()
    db.refresh(department)
    return department


@router.get("/departments/{department_id}", response_model=DepartmentOut)
def get_department(department_id: str, db: Session = Depends(get_db)) -> DepartmentOut:
    return _get_department(db, department_id)


@router.delete("/departments/{department_id}")
def delete_department(
    department_id: str,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> dict:
    department = _get_department(db, department_id)
    log_activity(
        db,
        actor=actor,
        action="department.delete",
        entity_type="department",
        entity_id=department.id,
        details={"code": department.code},
    )
    db.delete(department)
    db.commit()
    return {"success": True}


@router.get("/departments/{department_id}/settings", response_model=DepartmentSettingsOut)
def get_department_settings(department_id: str, db: Session = Depends(get_db)) -> DepartmentSettingsOut:
    department = _get_department(db, department_id)
    if department.settings is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department settings not found")
    return department.settings


@router.put("/departments/{department_id}/settings", response_model=DepartmentSettingsOut)
def update_department_settings(
    department_id: str,
    payload: DepartmentSettingsUpdate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> DepartmentSettingsOut:
    department = _get_department(db, department_id)
    if department.settings is None:
        department.settings = DepartmentSettings()
    for key, value in payload.model_dump().items():
        setattr(department.settings, key, value)
    log_activity(
        db,
        actor=actor,
        action="department.settings.update",
        entity_type="department",
        entity_id=department.id,
        details=payload.model_dump(mode="json"),
    )
    db.commit()
    db.refresh(department.settings)
    return department.settings
