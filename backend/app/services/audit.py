from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.activity_log import ActivityLog

logger = logging.getLogger(__name__)


def _json_safe(value: object) -> object:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_safe(item) for item in value]
    return value


def log_activity(
    db: Session,
    *,
    actor: str | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: Mapping[str, object] | None = None,
) -> ActivityLog:
    """Stage an audit row in the caller's transaction; it is written when the caller commits."""
    record = ActivityLog(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=_json_safe(details or {}),
    )
    db.add(record)
    logger.info(
        "AUDIT | action=%s | entity=%s:%s | actor=%s",
        action,
        entity_type or "-",
        entity_id or "-",
        actor or "-",
    )
    return record


def list_activity(
    db: Session,
    *,
    action: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    limit: int = 200,
) -> list[ActivityLog]:
    query = select(ActivityLog)
    if action:
        query = query.where(ActivityLog.action == action)
    if entity_type:
        query = query.where(ActivityLog.entity_type == entity_type)
    if entity_id:
        query = query.where(ActivityLog.entity_id == entity_id)
    query = query.order_by(ActivityLog.created_at.desc(), ActivityLog.id).limit(limit)
    return list(db.execute(query).scalars())
