from tests.ledger_helpers import (
    auth_headers,
    counters,
    create_material,
    create_stock,
    create_user,
    create_warehouse,
    stock_of,
    transfer_payload,
)


def _setup(client, db_session, *, requires_approval=True):
    source = create_warehouse(db_session, "A", requires_approval=requires_approval)
    destination = create_warehouse(db_session, "B")
    material = create_material(db_session)
    create_stock(db_session, source, material, not_dried=100)
    admin = create_user(db_session, suffix="admin")
    headers = auth_headers(client, admin)
    transfer = client.post(
        "/millstock/transfers",
        headers=headers,
        json=transfer_payload(source, destination, material, quantity=30, notes="first run"),
    ).json()
    return source, destination, material, headers, transfer


def test_cancel_pending_transfer(client, db_session):
    source, destination, material, headers, transfer = _setup(client, db_session)
    before = counters(stock_of(db_session, source, material))

    response = client.post(
        f"/millstock/transfers/{transfer['id']}/cancel",
        headers=headers,
        json={"reason": "truck unavailable"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    assert response.json()["notes"] == "first run\nCANCELLED: truck unavailable"
    assert counters(stock_of(db_session, source, material)) == before
    assert stock_of(db_session, destination, material) is None


def test_cancel_in_transit_is_rejected(client, db_session):
    source, _destination, material, headers, transfer = _setup(client, db_session, requires_approval=False)
    assert transfer["status"] == "IN_TRANSIT"

    response = client.post(f"/millstock/transfers/{transfer['id']}/cancel", headers=headers)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_STATE_TRANSITION"
    assert stock_of(db_session, source, material).in_transit_out == 30


def test_edit_header_fields(client, db_session):
    _source, _destination, _material, headers, transfer = _setup(client, db_session)

    response = client.patch(
        f"/millstock/transfers/{transfer['id']}",
        headers=headers,
        json={"notes": "second run", "transferDate": "2026-03-05T07:30:00"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["notes"] == "second run"
    assert payload["transferDate"].startswith("2026-03-05T07:30:00")
    assert payload["status"] == "PENDING"
    assert len(payload["items"]) == 1

    history = client.get(f"/millstock/transfers/{transfer['id']}/history", headers=headers).json()["rows"]
    assert [entry["action"] for entry in history] == ["CREATED", "EDITED"]
    assert "notes updated" in history[1]["details"]
    assert "2026-03-05" in history[1]["details"]


def test_noop_edit_writes_no_history(client, db_session):
    _source, _destination, _material, headers, transfer = _setup(client, db_session)

    response = client.patch(
        f"/millstock/transfers/{transfer['id']}",
        headers=headers,
        json={"notes": "first run"},
    )

    assert response.status_code == 200
    history = client.get(f"/millstock/transfers/{transfer['id']}/history", headers=headers).json()["rows"]
    assert [entry["action"] for entry in history] == ["CREATED"]


def test_edit_clears_notes(client, db_session):
    _source, _destination, _material, headers, transfer = _setup(client, db_session)

    response = client.patch(f"/millstock/transfers/{transfer['id']}", headers=headers, json={"notes": None})

    assert response.status_code == 200
    assert response.json()["notes"] is None


def test_edit_terminal_transfer_is_rejected(client, db_session):
    _source, _destination, _material, headers, transfer = _setup(client, db_session)
    client.post(f"/millstock/transfers/{transfer['id']}/reject", headers=headers)

    response = client.patch(f"/millstock/transfers/{transfer['id']}", headers=headers, json={"notes": "late"})

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_STATE_TRANSITION"


def test_staff_cannot_edit(client, db_session):
    _source, _destination, _material, _headers, transfer = _setup(client, db_session)
    staff = create_user(db_session, suffix="staff", role="STAFF")

    response = client.patch(
        f"/millstock/transfers/{transfer['id']}",
        headers=auth_headers(client, staff),
        json={"notes": "mine"},
    )

    assert response.status_code == 403
