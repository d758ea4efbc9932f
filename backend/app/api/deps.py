from collections.abc import Generator

from fastapi import Header
from sqlalchemy.orm import Session

from app.db.session import SessionLocal
from app.services.scope_lock import ScopeRunRegistry, get_scope_registry
from app.services.variants import VariantCache, get_variant_cache


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor(x_actor: str | None = Header(default=None, max_length=200)) -> str | None:
    """Free-form caller identity recorded in the audit trail; authentication lives in front of this service."""
    if x_actor is None:
        return None
    return x_actor.strip() or None


def get_registry() -> ScopeRunRegistry:
    return get_scope_registry()


def get_cache() -> VariantCache:
    return get_variant_cache()
