from app.core.config import get_settings
from app.services.scope_lock import get_scope_registry, scope_key


def _automate(client, department_id: str, **extra):
    return client.post(
        "/api/schedules/automate",
        json={"department_id": department_id, **extra},
        headers={"X-Actor": "registrar"},
    )


def _entries(client, department_id: str) -> list[dict]:
    response = client.get(f"/api/schedules/by-department/{department_id}")
    assert response.status_code == 200
    return response.json()


def test_automate_places_every_assignation(client, department_setup):
    department_id = department_setup["department_id"]
    response = _automate(client, department_id)

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["successful"] is True
    assert payload["status"] == "solved"
    assert payload["message"] == "Schedule automated successfully."
    assert payload["failed_assignations"] == []
    assert sorted(row["course"] for row in payload["schedule_report"]) == ["CS101", "CS102"]
    for row in payload["schedule_report"]:
        assert row["sections"] == ["BSCS-1A", "BSCS-1B"]
        assert row["room"] == "R1"
        assert row["day"] == 1

    entries = _entries(client, department_id)
    assert len(entries) == 2
    windows = sorted((entry["start_time"], entry["end_time"]) for entry in entries)
    assert windows[0][0] == "07:00"
    assert windows[0][1] <= windows[1][0]

    activity = client.get("/api/activity", params={"action": "schedule.automate"}).json()
    assert len(activity) == 1
    assert activity[0]["actor"] == "registrar"
    assert activity[0]["details"]["created"] == 2


def test_rerun_replaces_unlocked_entries_and_keeps_locked_ones(client, department_setup):
    department_id = department_setup["department_id"]
    assert _automate(client, department_id).status_code == 200
    first = _entries(client, department_id)

    locked_id = first[0]["id"]
    lock = client.patch(f"/api/schedules/{locked_id}/lock", json={"locked": True})
    assert lock.status_code == 200
    assert lock.json()["locked"] is True

    response = _automate(client, department_id)
    assert response.status_code == 200
    assert response.json()["successful"] is True

    second = _entries(client, department_id)
    assert len(second) == 2
    ids = {entry["id"] for entry in second}
    assert locked_id in ids
    assert first[1]["id"] not in ids
    kept = next(entry for entry in second if entry["id"] == locked_id)
    assert (kept["day"], kept["start_time"], kept["room"]) == (first[0]["day"], first[0]["start_time"], first[0]["room"])


def test_budget_exhaustion_writes_nothing(client, department_setup):
    department_id = department_setup["department_id"]
    response = _automate(client, department_id, overrides={"max_nodes": 1})

    assert response.status_code == 200
    payload = response.json()
    assert payload["successful"] is False
    assert payload["status"] == "budget_exhausted"
    assert payload["schedule_report"] == []
    assert _entries(client, department_id) == []


def test_unschedulable_assignation_is_reported_with_partial_success(client, department_setup):
    department_id = department_setup["department_id"]
    course = client.post(
        "/api/courses",
        json={"code": "CS401", "description": "Thesis", "duration": 3, "type": "Core", "year": 4},
    ).json()
    orphan = client.post(
        "/api/assignations",
        json={
            "course_id": course["id"],
            "professor_id": department_setup["professor_ids"][0],
            "department_id": department_id,
        },
    ).json()

    payload = _automate(client, department_id).json()
    assert payload["successful"] is True
    assert payload["message"] == "Scheduled 2 of 3 assignations; 1 could not be scheduled."
    assert payload["failed_assignations"] == [
        {"id": orphan["id"], "course": "CS401", "professor": "Ana", "reason": "No sections found for year 4"}
    ]


def test_abort_policy_rejects_the_run(client, department_setup):
    department_id = department_setup["department_id"]
    settings = client.get(f"/api/departments/{department_id}/settings").json()
    settings["unschedulable_policy"] = "abort"
    assert client.put(f"/api/departments/{department_id}/settings", json=settings).status_code == 200

    course = client.post(
        "/api/courses",
        json={"code": "CS401", "description": "Thesis", "duration": 3, "type": "Core", "year": 4},
    ).json()
    client.post(
        "/api/assignations",
        json={
            "course_id": course["id"],
            "professor_id": department_setup["professor_ids"][0],
            "department_id": department_id,
        },
    )

    payload = _automate(client, department_id).json()
    assert payload["status"] == "aborted"
    assert payload["successful"] is False
    assert _entries(client, department_id) == []


def test_unknown_department_is_rejected_before_search(client):
    response = _automate(client, "missing-department")
    assert response.status_code == 422
    payload = response.json()
    assert payload["successful"] is False
    assert payload["details"] == {"department_id": "missing-department"}


def test_concurrent_run_on_the_same_scope_is_rejected(client, department_setup, monkeypatch):
    department_id = department_setup["department_id"]
    monkeypatch.setattr(get_settings(), "automation_lock_timeout_seconds", 0.05)

    with get_scope_registry().hold(scope_key(department_id), timeout=0):
        response = _automate(client, department_id)

    assert response.status_code == 409
    assert response.json()["details"] == {"scope": scope_key(department_id)}
    assert _automate(client, department_id).status_code == 200


def test_cancel_without_a_running_job(client, department_setup):
    response = client.post("/api/schedules/automate/cancel", json={"department_id": department_setup["department_id"]})
    assert response.status_code == 200
    assert response.json()["cancelled"] is False


def test_cancel_reaches_the_running_job(client, department_setup):
    department_id = department_setup["department_id"]
    registry = get_scope_registry()
    with registry.hold(scope_key(department_id), timeout=0) as cancel_event:
        response = client.post("/api/schedules/automate/cancel", json={"department_id": department_id})
        assert response.json()["cancelled"] is True
        assert cancel_event.is_set()
