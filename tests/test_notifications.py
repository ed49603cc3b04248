import logging

import pytest

from app.millstock.core.deps import get_notification_publisher
from app.millstock.services.notifications import (
    LoggingNotificationPublisher,
    RecordingNotificationPublisher,
    TransferEvent,
    publish_safely,
)
from tests.ledger_helpers import (
    auth_headers,
    create_material,
    create_stock,
    create_user,
    create_warehouse,
    stock_of,
    transfer_payload,
)


class _ExplodingPublisher:
    def publish(self, event):
        raise RuntimeError("mail server down")


@pytest.fixture()
def recorder(client):
    publisher = RecordingNotificationPublisher()
    client.app.dependency_overrides[get_notification_publisher] = lambda: publisher
    yield publisher
    client.app.dependency_overrides.pop(get_notification_publisher, None)


def _setup(db_session, *, requires_approval=False):
    source = create_warehouse(db_session, "A", requires_approval=requires_approval)
    destination = create_warehouse(db_session, "B")
    material = create_material(db_session)
    create_stock(db_session, source, material, not_dried=100)
    admin = create_user(db_session, suffix="admin")
    return source, destination, material, admin


def test_lifecycle_publishes_events_after_commit(client, db_session, recorder):
    source, destination, material, admin = _setup(db_session)
    headers = auth_headers(client, admin)
    receiver = create_user(db_session, suffix="receiver")

    transfer = client.post(
        "/millstock/transfers",
        headers=headers,
        json=transfer_payload(source, destination, material, quantity=30, notifyUserId=str(receiver.id)),
    ).json()
    client.post(f"/millstock/transfers/{transfer['id']}/complete", headers=headers, json={})

    assert [event.type for event in recorder.events] == ["TRANSFER_CREATED", "TRANSFER_COMPLETED"]
    created = recorder.events[0]
    assert created.transfer_number == transfer["transferNumber"]
    assert created.status == "IN_TRANSIT"
    assert created.notify_user_id == str(receiver.id)
    assert created.from_warehouse_id == str(source.id)
    assert recorder.events[1].status == "COMPLETED"
    assert recorder.events[1].actor_id == str(admin.id)


def test_reject_and_cancel_publish(client, db_session, recorder):
    source, destination, material, admin = _setup(db_session, requires_approval=True)
    headers = auth_headers(client, admin)
    payload = transfer_payload(source, destination, material, quantity=10)
    first = client.post("/millstock/transfers", headers=headers, json=payload).json()
    second = client.post("/millstock/transfers", headers=headers, json=payload).json()

    client.post(f"/millstock/transfers/{first['id']}/reject", headers=headers)
    client.post(f"/millstock/transfers/{second['id']}/cancel", headers=headers)

    assert [event.type for event in recorder.events] == [
        "TRANSFER_CREATED",
        "TRANSFER_CREATED",
        "TRANSFER_REJECTED",
        "TRANSFER_CANCELLED",
    ]


def test_failed_transition_publishes_nothing(client, db_session, recorder):
    source, destination, material, admin = _setup(db_session)
    headers = auth_headers(client, admin)

    response = client.post(
        "/millstock/transfers",
        headers=headers,
        json=transfer_payload(source, destination, material, quantity=1000),
    )

    assert response.status_code == 400
    assert recorder.events == []


def test_publisher_failure_keeps_committed_transition(client, db_session):
    source, destination, material, admin = _setup(db_session)
    client.app.dependency_overrides[get_notification_publisher] = lambda: _ExplodingPublisher()
    try:
        response = client.post(
            "/millstock/transfers",
            headers=auth_headers(client, admin),
            json=transfer_payload(source, destination, material, quantity=30),
        )
    finally:
        client.app.dependency_overrides.pop(get_notification_publisher, None)

    assert response.status_code == 201
    assert stock_of(db_session, source, material).not_dried == 70


def test_publish_safely_logs_failures(caplog):
    event = TransferEvent(
        type="TRANSFER_CREATED",
        transfer_id="t-1",
        transfer_number="TRF-20260301-0001",
        from_warehouse_id="a",
        to_warehouse_id="b",
        actor_id=None,
        status="PENDING",
    )
    with caplog.at_level(logging.ERROR):
        publish_safely(_ExplodingPublisher(), event)
    assert "Failed to publish transfer notification" in caplog.text

    publish_safely(None, event)


def test_logging_publisher_writes_structured_line(caplog):
    event = TransferEvent(
        type="TRANSFER_APPROVED",
        transfer_id="t-2",
        transfer_number="TRF-20260301-0002",
        from_warehouse_id="a",
        to_warehouse_id="b",
        actor_id="u-1",
        status="IN_TRANSIT",
    )
    with caplog.at_level(logging.INFO, logger="app.millstock.services.notifications"):
        LoggingNotificationPublisher().publish(event)
    assert '"event": "transfer_notification"' in caplog.text
    assert "TRF-20260301-0002" in caplog.text
