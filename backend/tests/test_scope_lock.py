import threading

import pytest

from app.core.exceptions import AutomationBusyError
from app.services.scope_lock import ScopeRunRegistry, scope_key


def test_scope_key_normalizes_blank_terms():
    assert scope_key("dept", " 2026-2027 ", "") == "dept|2026-2027|"


def test_second_holder_of_a_scope_is_rejected():
    registry = ScopeRunRegistry()
    with registry.hold("dept||", timeout=0):
        assert registry.is_running("dept||") is True
        with pytest.raises(AutomationBusyError) as exc_info:
            with registry.hold("dept||", timeout=0):
                pass
    assert exc_info.value.status_code == 409
    assert registry.is_running("dept||") is False


def test_scopes_of_one_department_share_the_mutex():
    registry = ScopeRunRegistry()
    whole_department = scope_key("dept")
    one_term = scope_key("dept", "2026-2027", "1")
    with registry.hold(whole_department, timeout=0):
        with pytest.raises(AutomationBusyError):
            with registry.hold(one_term, timeout=0):
                pass
    with registry.hold(one_term, timeout=0):
        with pytest.raises(AutomationBusyError):
            with registry.hold(scope_key("dept", "2026-2027", "2"), timeout=0):
                pass
        assert registry.is_running(one_term) is True
        assert registry.is_running(whole_department) is False


def test_different_departments_do_not_block_each_other():
    registry = ScopeRunRegistry()
    with registry.hold("a||", timeout=0):
        with registry.hold("b||", timeout=0):
            assert registry.is_running("a||") and registry.is_running("b||")


def test_waiting_holder_acquires_after_release():
    registry = ScopeRunRegistry()
    acquired = threading.Event()
    release = threading.Event()

    def worker():
        with registry.hold("dept||", timeout=1):
            acquired.set()
            release.wait(1)

    thread = threading.Thread(target=worker)
    thread.start()
    assert acquired.wait(1)
    release.set()
    thread.join(1)

    with registry.hold("dept||", timeout=1):
        assert registry.is_running("dept||")


def test_cancel_sets_the_event_of_the_active_run():
    registry = ScopeRunRegistry()
    assert registry.cancel("dept||") is False
    with registry.hold("dept||", timeout=0) as cancel_event:
        assert registry.cancel("dept||") is True
        assert cancel_event.is_set()
    assert registry.cancel("dept||") is False
