from prometheus_client.parser import text_string_to_metric_families

from app.millstock.core.metrics import metrics
from tests.ledger_helpers import (
    auth_headers,
    create_material,
    create_stock,
    create_user,
    create_warehouse,
    transfer_payload,
)


def test_metrics_endpoint_counts_transitions_and_requests(client, db_session):
    metrics.reset()
    source = create_warehouse(db_session, "MA")
    destination = create_warehouse(db_session, "MB")
    material = create_material(db_session)
    create_stock(db_session, source, material, not_dried=10)
    user = create_user(db_session, suffix="metrics")

    created = client.post(
        "/millstock/transfers",
        headers=auth_headers(client, user),
        json=transfer_payload(source, destination, material, quantity=4),
    )
    assert created.status_code == 201

    response = client.get("/millstock/ops/metrics")

    assert response.status_code == 200
    content = response.text
    if not metrics.enabled:
        assert content == "metrics_disabled\n"
        return
    families = {family.name: family for family in text_string_to_metric_families(content)}
    transitions = [
        sample for sample in families["transfer_transitions"].samples if sample.name == "transfer_transitions_total"
    ]
    assert [(sample.labels, sample.value) for sample in transitions] == [({"action": "create"}, 1.0)]

    created_requests = [
        sample
        for sample in families["http_requests"].samples
        if sample.name == "http_requests_total"
        and sample.labels["method"] == "POST"
        and sample.labels["status"] == "201"
    ]
    assert [sample.value for sample in created_requests] == [1.0]
    latency = families["http_request_duration_ms"].samples
    assert any(sample.name == "http_request_duration_ms_bucket" for sample in latency)
