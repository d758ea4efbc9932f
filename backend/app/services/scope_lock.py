from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from threading import Event, Lock

from app.core.exceptions import AutomationBusyError

logger = logging.getLogger(__name__)


def scope_key(department_id: str, school_year: str = "", semester: str = "") -> str:
    return f"{department_id}|{school_year.strip()}|{semester.strip()}"


def department_of(key: str) -> str:
    return key.split("|", 1)[0]


class ScopeRunRegistry:
    """One mutex per department, plus a cancellation flag per held scope.

    A department-wide run replaces the unlocked entries of every term, so all scopes of a
    department share the mutex.
    """

    def __init__(self) -> None:
        self._locks: dict[str, Lock] = {}
        self._cancel_events: dict[str, Event] = {}
        self._guard = Lock()

    def _lock_for(self, key: str) -> Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str, *, timeout: float) -> Iterator[Event]:
        lock = self._lock_for(department_of(key))
        if not lock.acquire(timeout=max(timeout, 0)):
            logger.warning("SCOPE BUSY | scope=%s | timeout=%s", key, timeout)
            raise AutomationBusyError(key)
        cancel_event = Event()
        with self._guard:
            self._cancel_events[key] = cancel_event
        try:
            yield cancel_event
        finally:
            with self._guard:
                if self._cancel_events.get(key) is cancel_event:
                    del self._cancel_events[key]
            lock.release()

    def is_running(self, key: str) -> bool:
        with self._guard:
            return key in self._cancel_events

    def cancel(self, key: str) -> bool:
        with self._guard:
            cancel_event = self._cancel_events.get(key)
        if cancel_event is None:
            return False
        cancel_event.set()
        logger.info("SCOPE CANCEL REQUESTED | scope=%s", key)
        return True

    def clear(self) -> None:
        with self._guard:
            for cancel_event in self._cancel_events.values():
                cancel_event.set()
            self._cancel_events.clear()
            self._locks.clear()


_registry = ScopeRunRegistry()


def get_scope_registry() -> ScopeRunRegistry:
    return _registry


def clear_scope_registry() -> None:
    _registry.clear()
