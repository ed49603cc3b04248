def test_health_echoes_trace_header(client):
    response = client.get("/health", headers={"X-Trace-ID": "probe-1"})

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "trace_id": "probe-1"}
    assert response.headers["X-Trace-ID"] == "probe-1"


def test_request_id_header_is_used_as_fallback(client):
    response = client.get("/health", headers={"X-Request-ID": "lb-42"})

    assert response.json()["trace_id"] == "lb-42"


def test_malformed_trace_id_is_replaced(client):
    response = client.get("/health", headers={"X-Trace-ID": "x" * 80})

    trace_id = response.json()["trace_id"]
    assert trace_id != "x" * 80
    assert len(trace_id) == 36
    assert response.headers["X-Trace-ID"] == trace_id


def test_ready_checks_ledger_tables(client):
    response = client.get("/ready")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ready"
    assert payload["database"] in {"sqlite", "postgresql"}
    assert payload["trace_id"]
