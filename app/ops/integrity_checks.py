from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_, select

from app.millstock.core.metrics import metrics
from app.millstock.db.enums import TransferStatus
from app.millstock.db.models import StockRecord, Transfer, TransferItem, Warehouse


SEVERITY_CRITICAL = "CRITICAL"
SEVERITY_WARN = "WARN"

_COUNTERS = ("not_dried", "under_drying", "dried", "damaged", "in_transit_out", "in_transit_in")


@dataclass(frozen=True)
class IntegrityFinding:
    check_id: str
    severity: str
    warehouse_id: str
    message: str
    entity: str
    entity_id: str | None
    details: dict


def resolve_warehouses(db, warehouse: str) -> list[str]:
    if warehouse.lower() != "all":
        return [warehouse]
    return [str(row.id) for row in db.execute(select(Warehouse.id).order_by(Warehouse.code)).all()]


def check_negative_counter(db, warehouse_id: str) -> list[IntegrityFinding]:
    columns = [getattr(StockRecord, name) for name in _COUNTERS]
    rows = db.execute(
        select(StockRecord)
        .where(StockRecord.warehouse_id == warehouse_id)
        .where(or_(*[column < 0 for column in columns]))
    ).scalars().all()
    findings = []
    for record in rows:
        negative = {name: getattr(record, name) for name in _COUNTERS if getattr(record, name) < 0}
        findings.append(
            IntegrityFinding(
                check_id="negative_counter",
                severity=SEVERITY_CRITICAL,
                warehouse_id=warehouse_id,
                message="Stock record has a negative counter.",
                entity="stock_records",
                entity_id=str(record.id),
                details={
                    "material_type_id": str(record.material_type_id),
                    "thickness": record.thickness,
                    "counters": negative,
                },
            )
        )
    if findings:
        metrics.increment_invariant_violation("negative_counter", len(findings))
    return findings


def _transfer_timestamps_invalid(status: str, approved_at, completed_at) -> bool:
    if status == TransferStatus.PENDING.value:
        return approved_at is not None or completed_at is not None
    if status in {TransferStatus.APPROVED.value, TransferStatus.IN_TRANSIT.value}:
        return approved_at is None or completed_at is not None
    if status == TransferStatus.COMPLETED.value:
        return approved_at is None or completed_at is None
    if status == TransferStatus.REJECTED.value:
        return approved_at is None or completed_at is not None
    if status == TransferStatus.CANCELLED.value:
        return approved_at is not None or completed_at is not None
    return True


def check_transfer_fsm(db, warehouse_id: str) -> list[IntegrityFinding]:
    rows = db.execute(
        select(
            Transfer.id,
            Transfer.transfer_number,
            Transfer.status,
            Transfer.approved_at,
            Transfer.completed_at,
        ).where(Transfer.from_warehouse_id == warehouse_id)
    ).all()
    findings = []
    for row in rows:
        if not _transfer_timestamps_invalid(row.status, row.approved_at, row.completed_at):
            continue
        findings.append(
            IntegrityFinding(
                check_id="transfer_fsm",
                severity=SEVERITY_CRITICAL,
                warehouse_id=warehouse_id,
                message="Transfer state/timestamps inconsistent.",
                entity="transfers",
                entity_id=str(row.id),
                details={
                    "transfer_number": row.transfer_number,
                    "status": row.status,
                    "approved_at": _format_datetime(row.approved_at),
                    "completed_at": _format_datetime(row.completed_at),
                },
            )
        )
    if findings:
        metrics.increment_invariant_violation("transfer_fsm", len(findings))
    return findings


def _open_quantities(db, warehouse_column, applied_column, warehouse_id: str) -> dict[tuple[str, str], int]:
    rows = db.execute(
        select(TransferItem.material_type_id, TransferItem.thickness, TransferItem.quantity)
        .join(Transfer, TransferItem.transfer_id == Transfer.id)
        .where(warehouse_column == warehouse_id)
        .where(Transfer.status == TransferStatus.IN_TRANSIT.value)
        .where(applied_column.is_(True))
    ).all()
    totals: dict[tuple[str, str], int] = defaultdict(int)
    for row in rows:
        totals[(str(row.material_type_id), row.thickness)] += int(row.quantity)
    return totals


def check_in_transit_balance(db, warehouse_id: str) -> list[IntegrityFinding]:
    records = db.execute(select(StockRecord).where(StockRecord.warehouse_id == warehouse_id)).scalars().all()
    recorded = {(str(record.material_type_id), record.thickness): record for record in records}
    expectations = {
        "in_transit_out": _open_quantities(
            db, Transfer.from_warehouse_id, Transfer.source_ledger_applied, warehouse_id
        ),
        "in_transit_in": _open_quantities(
            db, Transfer.to_warehouse_id, Transfer.destination_ledger_applied, warehouse_id
        ),
    }
    findings = []
    for counter, expected in expectations.items():
        keys = set(expected) | {key for key, record in recorded.items() if getattr(record, counter)}
        for key in sorted(keys):
            record = recorded.get(key)
            actual = getattr(record, counter) if record is not None else 0
            if actual == expected.get(key, 0):
                continue
            findings.append(
                IntegrityFinding(
                    check_id="in_transit_balance",
                    severity=SEVERITY_WARN,
                    warehouse_id=warehouse_id,
                    message=f"{counter} does not match open transfers.",
                    entity="stock_records",
                    entity_id=str(record.id) if record is not None else None,
                    details={
                        "material_type_id": key[0],
                        "thickness": key[1],
                        "counter": counter,
                        "recorded": actual,
                        "expected": expected.get(key, 0),
                    },
                )
            )
    if findings:
        metrics.increment_invariant_violation("in_transit_balance", len(findings))
    return findings


def _format_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def run_integrity_checks(db, warehouse_id: str) -> list[IntegrityFinding]:
    findings: list[IntegrityFinding] = []
    findings.extend(check_negative_counter(db, warehouse_id))
    findings.extend(check_transfer_fsm(db, warehouse_id))
    findings.extend(check_in_transit_balance(db, warehouse_id))
    return findings
