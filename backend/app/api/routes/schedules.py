from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_actor, get_db, get_registry
from app.core.config import get_settings
from app.models.schedule import ScheduleEntry
from app.schemas.schedule import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    BulkLockRequest,
    BulkLockResponse,
    LockUpdate,
    ScheduleEntryBatchCreate,
    ScheduleEntryCreate,
    ScheduleEntryOut,
    ScheduleEntryUpdate,
)
from app.services.automation import AutomationScope
from app.services.schedule_ops import (
    ManualEntryRequest,
    bulk_delete,
    bulk_set_lock,
    create_manual_entries,
    create_manual_entry,
    delete_manual_entry,
    get_entry,
    list_entries,
    set_entry_lock,
    update_manual_entry,
)
from app.services.scope_lock import ScopeRunRegistry

router = APIRouter()


def to_entry_out(entry: ScheduleEntry) -> ScheduleEntryOut:
    sections = sorted(entry.sections, key=lambda section: section.label)
    return ScheduleEntryOut(
        id=entry.id,
        assignation_id=entry.assignation_id,
        day=entry.day,
        start_time=entry.start_time,
        end_time=entry.end_time,
        room_id=entry.room_id,
        room=entry.room.code,
        course=entry.assignation.course.code,
        course_type=entry.assignation.course.type.value,
        professor_id=entry.assignation.professor_id,
        professor=entry.assignation.professor.name,
        department_id=entry.assignation.department_id,
        section_ids=[section.id for section in sections],
        sections=[section.label for section in sections],
        locked=entry.locked,
    )


def _manual_request(payload: ScheduleEntryCreate) -> ManualEntryRequest:
    return ManualEntryRequest(
        assignation_id=payload.assignation_id,
        room_id=payload.room_id,
        day=payload.day,
        start_time=payload.start_time,
        end_time=payload.end_time,
        section_ids=tuple(payload.section_ids),
    )


@router.post("/schedules", response_model=ScheduleEntryOut, status_code=status.HTTP_201_CREATED)
def create_schedule(
    payload: ScheduleEntryCreate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> ScheduleEntryOut:
    return to_entry_out(create_manual_entry(db, _manual_request(payload), actor=actor))


@router.post("/schedules/batch", response_model=list[ScheduleEntryOut], status_code=status.HTTP_201_CREATED)
def create_schedules(
    payload: ScheduleEntryBatchCreate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> list[ScheduleEntryOut]:
    requests = [_manual_request(item) for item in payload.entries]
    return [to_entry_out(entry) for entry in create_manual_entries(db, requests, actor=actor)]


@router.get("/schedules/by-room/{room_id}", response_model=list[ScheduleEntryOut])
def list_by_room(room_id: str, db: Session = Depends(get_db)) -> list[ScheduleEntryOut]:
    return [to_entry_out(entry) for entry in list_entries(db, room_id=room_id)]


@router.get("/schedules/by-professor/{professor_id}", response_model=list[ScheduleEntryOut])
def list_by_professor(professor_id: str, db: Session = Depends(get_db)) -> list[ScheduleEntryOut]:
    return [to_entry_out(entry) for entry in list_entries(db, professor_id=professor_id)]


@router.get("/schedules/by-department/{department_id}", response_model=list[ScheduleEntryOut])
def list_by_department(department_id: str, db: Session = Depends(get_db)) -> list[ScheduleEntryOut]:
    return [to_entry_out(entry) for entry in list_entries(db, department_id=department_id)]


@router.post("/schedules/bulk-lock", response_model=BulkLockResponse)
def bulk_lock(
    payload: BulkLockRequest,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> BulkLockResponse:
    updated = bulk_set_lock(
        db,
        locked=payload.locked,
        department_id=payload.department_id,
        room_id=payload.room_id,
        professor_id=payload.professor_id,
        day=payload.day,
        actor=actor,
    )
    return BulkLockResponse(locked=payload.locked, updated=updated)


@router.post("/schedules/bulk-delete", response_model=BulkDeleteResponse)
def bulk_delete_schedules(
    payload: BulkDeleteRequest,
    actor: str | None = Depends(get_actor),
    registry: ScopeRunRegistry = Depends(get_registry),
    db: Session = Depends(get_db),
) -> BulkDeleteResponse:
    scope = AutomationScope(payload.department_id, payload.school_year, payload.semester)
    with registry.hold(scope.key, timeout=get_settings().automation_lock_timeout_seconds):
        result = bulk_delete(db, scope, include_locked=payload.include_locked, actor=actor)
    return BulkDeleteResponse(deleted=result.deleted, kept_locked=result.kept_locked)


@router.get("/schedules/{entry_id}", response_model=ScheduleEntryOut)
def get_schedule(entry_id: str, db: Session = Depends(get_db)) -> ScheduleEntryOut:
    return to_entry_out(get_entry(db, entry_id))


@router.put("/schedules/{entry_id}", response_model=ScheduleEntryOut)
def update_schedule(
    entry_id: str,
    payload: ScheduleEntryUpdate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> ScheduleEntryOut:
    return to_entry_out(update_manual_entry(db, entry_id, _manual_request(payload), actor=actor))


@router.delete("/schedules/{entry_id}")
def delete_schedule(
    entry_id: str,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> dict:
    delete_manual_entry(db, entry_id, actor=actor)
    return {"success": True}


@router.patch("/schedules/{entry_id}/lock", response_model=ScheduleEntryOut)
def lock_schedule(
    entry_id: str,
    payload: LockUpdate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> ScheduleEntryOut:
    entry = set_entry_lock(db, entry_id, payload.locked, actor=actor)
    return to_entry_out(get_entry(db, entry.id))
