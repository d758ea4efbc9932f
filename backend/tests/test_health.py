def test_health_reports_database_and_schema(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["database"] == {"ok": True, "missing_tables": [], "error": None}
