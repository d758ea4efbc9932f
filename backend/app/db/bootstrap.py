from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from app.core.config import get_settings
from app.db.base import Base
from app.db.session import engine as default_engine

logger = logging.getLogger(__name__)

REQUIRED_TABLES: set[str] = {
    "departments",
    "department_settings",
    "rooms",
    "programs",
    "sections",
    "courses",
    "course_programs",
    "professors",
    "assignations",
    "assignation_sections",
    "schedule_entries",
    "schedule_sections",
    "activity_logs",
}


def missing_tables(engine: Engine | None = None) -> list[str]:
    bind = engine or default_engine
    with bind.connect() as connection:
        existing = set(inspect(connection).get_table_names())
    return sorted(REQUIRED_TABLES - existing)


def ensure_schema(engine: Engine | None = None) -> None:
    bind = engine or default_engine
    if not get_settings().auto_create_schema:
        absent = missing_tables(bind)
        if absent:
            logger.warning("SCHEMA INCOMPLETE | missing_tables=%s | run alembic upgrade head", ",".join(absent))
        return

    import app.models  # noqa: F401

    Base.metadata.create_all(bind=bind)
    logger.info("SCHEMA READY | tables=%s", len(Base.metadata.tables))
