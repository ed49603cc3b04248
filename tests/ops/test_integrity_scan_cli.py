import json
import uuid

from app.millstock.db.enums import TransferStatus
from app.millstock.db.models import Transfer
from app.ops.integrity_scan import run_scan
from tests.ledger_helpers import create_material, create_stock, create_user, create_warehouse


def test_integrity_scan_no_findings(db_session, capsys):
    warehouse = create_warehouse(db_session, "SCAN")
    create_stock(db_session, warehouse, create_material(db_session), not_dried=4)

    database_url = str(db_session.get_bind().url)
    exit_code = run_scan("all", "json", True, database_url=database_url)
    captured = capsys.readouterr()
    payload = json.loads(captured.out)
    assert exit_code == 0
    assert payload["summary"] == {"total": 0, "critical": 0, "warn": 0}
    assert payload["findings"] == []
    assert payload["warehouses_scanned"] == 1


def test_integrity_scan_critical_exit(db_session, capsys):
    source = create_warehouse(db_session, "SCAN-A")
    destination = create_warehouse(db_session, "SCAN-B")
    actor = create_user(db_session, suffix="scan")
    db_session.add(
        Transfer(
            id=uuid.uuid4(),
            transfer_number="TRF-20260101-0001",
            from_warehouse_id=source.id,
            to_warehouse_id=destination.id,
            status=TransferStatus.COMPLETED.value,
            created_by_id=actor.id,
        )
    )
    db_session.commit()

    database_url = str(db_session.get_bind().url)
    exit_code = run_scan(str(source.id), "json", True, database_url=database_url)
    captured = capsys.readouterr()
    payload = json.loads(captured.out)
    assert exit_code == 1
    assert payload["summary"]["critical"] == 1
    assert payload["findings"][0]["check_id"] == "transfer_fsm"


def test_integrity_scan_text_output_does_not_fail_without_flag(db_session, capsys):
    warehouse = create_warehouse(db_session, "SCAN-T")
    create_stock(db_session, warehouse, create_material(db_session), in_transit_in=3)

    database_url = str(db_session.get_bind().url)
    exit_code = run_scan(str(warehouse.id), "text", False, database_url=database_url)
    captured = capsys.readouterr()
    assert exit_code == 0
    assert "Stock Integrity Scan" in captured.out
    assert "WARN: 1" in captured.out
    assert f"warehouse {warehouse.id}" in captured.out
    assert "in_transit_balance" in captured.out
