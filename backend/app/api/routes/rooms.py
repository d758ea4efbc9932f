from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.api.deps import get_actor, get_db
from app.models.room import Room, RoomType
from app.models.schedule import ScheduleEntry
from app.schemas.room import RoomCreate, RoomOut, RoomUpdate
from app.services.audit import log_activity

router = APIRouter()


@router.get("/rooms", response_model=list[RoomOut])
def list_rooms(room_type: RoomType | None = None, db: Session = Depends(get_db)) -> list[RoomOut]:
    query = select(Room).order_by(Room.code)
    if room_type is not None:
        query = query.where(Room.type == room_type)
    return list(db.execute(query).scalars())


@router.post("/rooms", response_model=RoomOut, status_code=status.HTTP_201_CREATED)
def create_room(
    payload: RoomCreate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> RoomOut:
    existing = db.execute(select(Room).where(Room.code == payload.code)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Room code already exists")
    room = Room(**payload.model_dump())
    db.add(room)
    db.flush()
    log_activity(db, actor=actor, action="room.create", entity_type="room", entity_id=room.id)
    db.commit()
    db.refresh(room)
    return room


@router.put("/rooms/{room_id}", response_model=RoomOut)
def update_room(
    room_id: str,
    payload: RoomUpdate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> RoomOut:
    room = db.get(Room, room_id)
    if room is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")

    data = payload.model_dump(exclude_unset=True)
    if "code" in data:
        existing = db.execute(select(Room).where(Room.code == data["code"], Room.id != room_id)).scalar_one_or_none()
        if existing:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Room code already exists")

    for key, value in data.items():
        setattr(room, key, value)
    if data:
        log_activity(db, actor=actor, action="room.update", entity_type="room", entity_id=room.id)
    db.commit()
    db.refresh(room)
    return room


@router.delete("/rooms/{room_id}")
def delete_room(
    room_id: str,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> dict:
    room = db.get(Room, room_id)
    if room is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    counts = db.execute(
        select(ScheduleEntry.locked, func.count()).where(ScheduleEntry.room_id == room_id).group_by(ScheduleEntry.locked)
    ).all()
    booked = {bool(locked): count for locked, count in counts}
    if booked.get(True):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Room {room.code} has {booked[True]} locked schedule entries; unlock them first",
        )
    removed = booked.get(False, 0)
    log_activity(
        db,
        actor=actor,
        action="room.delete",
        entity_type="room",
        entity_id=room.id,
        details={"code": room.code, "removed_entries": removed},
    )
    db.delete(room)
    db.commit()
    return {"success": True, "removed_entry_count": removed}
