"""Stock Ledger: per (warehouse, material type, thickness) counters.

Every decrement is a single conditional ``UPDATE ... WHERE bucket >= :q`` so two
concurrent units of work can never both spend the same quantity; the loser sees
zero affected rows and aborts its transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import insert, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from app.millstock.core.error_catalog import (
    ErrorCatalog,
    InsufficientStockError,
    NegativeStockInvariantError,
    PersistenceError,
)
from app.millstock.core.logging import log_event
from app.millstock.core.metrics import metrics
from app.millstock.db.enums import IN_TRANSIT_BUCKETS, MovementType, ReferenceType, StockBucket
from app.millstock.db.models import STOCK_BUCKET_COLUMNS, StockMovement, StockRecord
from app.millstock.repos.ids import as_uuid
from app.millstock.repos.stock import StockRepository

logger = logging.getLogger(__name__)

_CAS_ATTEMPTS = 5


def bucket_value(record: StockRecord, bucket: StockBucket) -> int:
    return int(getattr(record, STOCK_BUCKET_COLUMNS[bucket].key) or 0)


def is_low_stock(record: StockRecord) -> bool:
    if record.minimum_stock_level is None:
        return False
    return (record.not_dried or 0) + (record.dried or 0) < record.minimum_stock_level


class StockLedger:
    def __init__(self, db):
        self.db = db
        self.repo = StockRepository(db)

    def _insert_statement(self):
        dialect = self.db.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite_insert(StockRecord)
        if dialect == "postgresql":
            return postgresql_insert(StockRecord)
        return None

    def get_or_create(self, warehouse_id, material_type_id, thickness: str) -> StockRecord:
        record = self.repo.get_by_key(warehouse_id, material_type_id, thickness)
        if record is not None:
            return record
        values = {
            "warehouse_id": as_uuid(warehouse_id),
            "material_type_id": as_uuid(material_type_id),
            "thickness": thickness,
        }
        stmt = self._insert_statement()
        if stmt is None:
            self.db.execute(insert(StockRecord).values(**values))
        else:
            self.db.execute(
                stmt.values(**values).on_conflict_do_nothing(
                    index_elements=["warehouse_id", "material_type_id", "thickness"]
                )
            )
        return self.repo.get_by_key(warehouse_id, material_type_id, thickness)

    def _apply_delta(self, record: StockRecord, bucket: StockBucket, delta: int) -> bool:
        column = STOCK_BUCKET_COLUMNS[bucket]
        stmt = update(StockRecord).where(StockRecord.id == record.id)
        if delta < 0:
            stmt = stmt.where(column >= -delta)
        stmt = stmt.values({column.key: column + delta, "updated_at": datetime.utcnow()}).execution_options(
            synchronize_session=False
        )
        return self.db.execute(stmt).rowcount == 1

    def _conflict(self, record: StockRecord, bucket: StockBucket, delta: int) -> int:
        fresh = self.repo.get_fresh(record.id)
        available = bucket_value(fresh, bucket) if fresh is not None else 0
        metrics.increment_ledger_conflict()
        log_event(
            logger,
            "ledger_conflict",
            level=logging.WARNING,
            stock_record_id=str(record.id),
            warehouse_id=str(record.warehouse_id),
            bucket=bucket.value,
            delta=delta,
            available=available,
        )
        return available

    def adjust_bucket(self, record: StockRecord, bucket: StockBucket, delta: int) -> StockRecord:
        """Apply ``bucket += delta``; a negative result aborts with ``NegativeStockInvariantError``."""
        if delta == 0:
            return record
        if not self._apply_delta(record, bucket, delta):
            available = self._conflict(record, bucket, delta)
            raise NegativeStockInvariantError(
                bucket=bucket.value,
                delta=delta,
                available=available,
                warehouse_id=str(record.warehouse_id),
            )
        return self.repo.get_fresh(record.id)

    def withdraw(self, record: StockRecord, bucket: StockBucket, quantity: int) -> StockRecord:
        """Take ``quantity`` out of an availability bucket or fail with ``InsufficientStockError``."""
        if bucket in IN_TRANSIT_BUCKETS:
            return self.adjust_bucket(record, bucket, -quantity)
        if not self._apply_delta(record, bucket, -quantity):
            available = self._conflict(record, bucket, -quantity)
            raise InsufficientStockError(
                available=available,
                requested=quantity,
                warehouse_id=str(record.warehouse_id),
                material_type_id=str(record.material_type_id),
                thickness=record.thickness,
                bucket=bucket.value,
            )
        return self.repo.get_fresh(record.id)

    def set_bucket(self, record: StockRecord, bucket: StockBucket, value: int) -> tuple[int, int]:
        """Overwrite a counter with an absolute value and return ``(before, after)``."""
        if value < 0:
            raise NegativeStockInvariantError(bucket=bucket.value, delta=value, warehouse_id=str(record.warehouse_id))
        column = STOCK_BUCKET_COLUMNS[bucket]
        for _ in range(_CAS_ATTEMPTS):
            fresh = self.repo.get_fresh(record.id)
            before = bucket_value(fresh, bucket)
            stmt = (
                update(StockRecord)
                .where(StockRecord.id == record.id, column == before)
                .values({column.key: value, "updated_at": datetime.utcnow()})
                .execution_options(synchronize_session=False)
            )
            if self.db.execute(stmt).rowcount == 1:
                self.repo.get_fresh(record.id)
                return before, value
            self._conflict(record, bucket, value - before)
        metrics.increment_lock_wait_timeout()
        raise PersistenceError(
            {
                "operation": "stock.set_bucket",
                "bucket": bucket.value,
                "stock_record_id": str(record.id),
                "attempts": _CAS_ATTEMPTS,
            },
            error=ErrorCatalog.LOCK_TIMEOUT,
        )

    def set_minimum_level(self, record: StockRecord, minimum_stock_level: int | None) -> StockRecord:
        self.db.execute(
            update(StockRecord)
            .where(StockRecord.id == record.id)
            .values(minimum_stock_level=minimum_stock_level, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return self.repo.get_fresh(record.id)

    def record_movement(
        self,
        *,
        movement_type: MovementType,
        record: StockRecord,
        quantity_change: int,
        reference_type: ReferenceType,
        reference_id,
        reference_number: str | None = None,
        from_bucket: StockBucket | None = None,
        to_bucket: StockBucket | None = None,
        actor_id=None,
        details: str | None = None,
    ) -> StockMovement:
        movement = StockMovement(
            movement_type=movement_type.value,
            warehouse_id=record.warehouse_id,
            material_type_id=record.material_type_id,
            thickness=record.thickness,
            quantity_change=quantity_change,
            from_bucket=from_bucket.value if from_bucket else None,
            to_bucket=to_bucket.value if to_bucket else None,
            reference_type=reference_type.value,
            reference_id=as_uuid(reference_id),
            reference_number=reference_number,
            actor_id=as_uuid(actor_id),
            details=details,
        )
        self.db.add(movement)
        return movement
