from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.db import bootstrap


def _memory_engine():
    return create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)


def test_missing_tables_lists_every_required_table_on_empty_database():
    engine = _memory_engine()
    assert bootstrap.missing_tables(engine) == sorted(bootstrap.REQUIRED_TABLES)


def test_ensure_schema_creates_tables_when_enabled(monkeypatch):
    engine = _memory_engine()
    monkeypatch.setattr(bootstrap, "get_settings", lambda: Settings(auto_create_schema=True))

    bootstrap.ensure_schema(engine)

    assert bootstrap.missing_tables(engine) == []


def test_ensure_schema_only_reports_when_disabled(monkeypatch, caplog):
    engine = _memory_engine()
    monkeypatch.setattr(bootstrap, "get_settings", lambda: Settings(auto_create_schema=False))

    with caplog.at_level("WARNING", logger="app.db.bootstrap"):
        bootstrap.ensure_schema(engine)

    assert "schedule_entries" in bootstrap.missing_tables(engine)
    assert "SCHEMA INCOMPLETE" in caplog.text
