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


def _pending_transfer(client, db_session, *, destination_tracks=True, source_tracks=True):
    source = create_warehouse(db_session, "A", stock_control=source_tracks, requires_approval=True)
    destination = create_warehouse(db_session, "B", stock_control=destination_tracks)
    material = create_material(db_session)
    create_stock(db_session, source, material, not_dried=100)
    admin = create_user(db_session, suffix="admin")
    headers = auth_headers(client, admin)
    response = client.post(
        "/millstock/transfers",
        headers=headers,
        json=transfer_payload(source, destination, material, quantity=30),
    )
    assert response.status_code == 201
    assert response.json()["status"] == "PENDING"
    return source, destination, material, admin, headers, response.json()


def test_approve_moves_to_in_transit(client, db_session):
    source, destination, material, admin, headers, transfer = _pending_transfer(client, db_session)

    response = client.post(f"/millstock/transfers/{transfer['id']}/approve", headers=headers)

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "IN_TRANSIT"
    assert payload["approvedById"] == str(admin.id)
    assert payload["approvedAt"]
    source_record = stock_of(db_session, source, material)
    assert source_record.not_dried == 70
    assert source_record.in_transit_out == 30
    assert stock_of(db_session, destination, material).in_transit_in == 30


def test_approve_with_untracked_source_is_paperwork_only(client, db_session):
    source, destination, material, _admin, headers, transfer = _pending_transfer(
        client, db_session, source_tracks=False
    )

    response = client.post(f"/millstock/transfers/{transfer['id']}/approve", headers=headers)

    assert response.status_code == 200
    assert response.json()["status"] == "IN_TRANSIT"
    assert response.json()["sourceLedgerApplied"] is False
    assert stock_of(db_session, source, material).not_dried == 100
    assert stock_of(db_session, destination, material) is None


def test_approve_rechecks_availability(client, db_session):
    source, _destination, material, _admin, headers, transfer = _pending_transfer(client, db_session)
    record = stock_of(db_session, source, material)
    record.not_dried = 10
    db_session.commit()

    response = client.post(f"/millstock/transfers/{transfer['id']}/approve", headers=headers)

    assert response.status_code == 400
    assert response.json()["code"] == "INSUFFICIENT_STOCK"
    assert response.json()["details"]["available"] == 10
    detail = client.get(f"/millstock/transfers/{transfer['id']}", headers=headers).json()
    assert detail["status"] == "PENDING"
    assert [entry["action"] for entry in detail["history"]] == ["CREATED"]
    assert stock_of(db_session, source, material).in_transit_out == 0


def test_reject_leaves_stock_untouched(client, db_session):
    source, destination, material, _admin, headers, transfer = _pending_transfer(client, db_session)
    before = counters(stock_of(db_session, source, material))

    response = client.post(
        f"/millstock/transfers/{transfer['id']}/reject",
        headers=headers,
        json={"rejectionReason": "damaged in yard"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "REJECTED"
    assert payload["notes"].endswith("REJECTED: damaged in yard")
    assert counters(stock_of(db_session, source, material)) == before
    assert stock_of(db_session, destination, material) is None

    history = client.get(f"/millstock/transfers/{transfer['id']}/history", headers=headers).json()
    assert history["transferId"] == transfer["id"]
    assert [entry["action"] for entry in history["rows"]] == ["CREATED", "REJECTED"]
    assert history["rows"][1]["details"] == "damaged in yard"


def test_reject_without_body(client, db_session):
    _source, _destination, _material, _admin, headers, transfer = _pending_transfer(client, db_session)

    response = client.post(f"/millstock/transfers/{transfer['id']}/reject", headers=headers)

    assert response.status_code == 200
    assert response.json()["status"] == "REJECTED"


def test_invalid_transitions(client, db_session):
    _source, _destination, _material, _admin, headers, transfer = _pending_transfer(client, db_session)
    transfer_id = transfer["id"]

    assert client.post(f"/millstock/transfers/{transfer_id}/complete", headers=headers).status_code == 400
    assert client.post(f"/millstock/transfers/{transfer_id}/approve", headers=headers).status_code == 200

    second = client.post(f"/millstock/transfers/{transfer_id}/approve", headers=headers)
    assert second.status_code == 400
    assert second.json()["code"] == "INVALID_STATE_TRANSITION"
    assert second.json()["details"]["status"] == "IN_TRANSIT"

    reject = client.post(f"/millstock/transfers/{transfer_id}/reject", headers=headers)
    assert reject.status_code == 400
    assert reject.json()["code"] == "INVALID_STATE_TRANSITION"


def test_unknown_transfer_is_not_found(client, db_session):
    admin = create_user(db_session, suffix="admin")
    headers = auth_headers(client, admin)

    response = client.post("/millstock/transfers/not-a-uuid/approve", headers=headers)
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"

    response = client.get("/millstock/transfers/6d1f0000-0000-4000-8000-000000000000", headers=headers)
    assert response.status_code == 404


def test_approve_requires_permission(client, db_session):
    _source, _destination, _material, _admin, _headers, transfer = _pending_transfer(client, db_session)
    staff = create_user(db_session, suffix="staff", role="STAFF")

    response = client.post(
        f"/millstock/transfers/{transfer['id']}/approve",
        headers=auth_headers(client, staff),
    )

    assert response.status_code == 403
    assert response.json()["code"] == "PERMISSION_DENIED"
    assert response.json()["details"]["permission"] == "TRANSFER_APPROVE"


def test_approve_requires_source_warehouse_scope(client, db_session):
    source, destination, _material, _admin, _headers, transfer = _pending_transfer(client, db_session)
    outsider = create_user(db_session, suffix="outsider", role="WAREHOUSE_MANAGER", warehouses=[destination])
    insider = create_user(db_session, suffix="insider", role="WAREHOUSE_MANAGER", warehouses=[source])

    denied = client.post(
        f"/millstock/transfers/{transfer['id']}/approve",
        headers=auth_headers(client, outsider),
    )
    assert denied.status_code == 403
    assert denied.json()["code"] == "WAREHOUSE_SCOPE_DENIED"

    allowed = client.post(
        f"/millstock/transfers/{transfer['id']}/approve",
        headers=auth_headers(client, insider),
    )
    assert allowed.status_code == 200


def test_pending_approvals_are_scoped(client, db_session):
    source, destination, _material, _admin, headers, transfer = _pending_transfer(client, db_session)
    insider = create_user(db_session, suffix="insider", role="WAREHOUSE_MANAGER", warehouses=[source])
    outsider = create_user(db_session, suffix="outsider", role="WAREHOUSE_MANAGER", warehouses=[destination])

    admin_rows = client.get("/millstock/transfers/pending-approvals", headers=headers).json()["rows"]
    assert [row["id"] for row in admin_rows] == [transfer["id"]]

    insider_rows = client.get(
        "/millstock/transfers/pending-approvals",
        headers=auth_headers(client, insider),
    ).json()["rows"]
    assert [row["id"] for row in insider_rows] == [transfer["id"]]

    outsider_rows = client.get(
        "/millstock/transfers/pending-approvals",
        headers=auth_headers(client, outsider),
    ).json()["rows"]
    assert outsider_rows == []


def test_list_transfers_filters(client, db_session):
    source, destination, _material, _admin, headers, transfer = _pending_transfer(client, db_session)

    rows = client.get("/millstock/transfers", headers=headers, params={"status": "PENDING"}).json()["rows"]
    assert [row["id"] for row in rows] == [transfer["id"]]

    rows = client.get("/millstock/transfers", headers=headers, params={"status": "COMPLETED"}).json()["rows"]
    assert rows == []

    rows = client.get(
        "/millstock/transfers",
        headers=headers,
        params={"warehouseId": str(destination.id)},
    ).json()["rows"]
    assert len(rows) == 1
    assert rows[0]["fromWarehouseId"] == str(source.id)
    assert "history" not in rows[0] or rows[0]["history"] is None
