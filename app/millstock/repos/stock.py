from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select

from app.millstock.db.models import StockAdjustment, StockMovement, StockRecord, Warehouse
from app.millstock.repos.ids import as_uuid


@dataclass(frozen=True)
class MovementQueryFilters:
    warehouse_id: str | None = None
    material_type_id: str | None = None
    thickness: str | None = None
    movement_type: str | None = None
    days: int | None = None


class StockRepository:
    def __init__(self, db):
        self.db = db

    def get_by_key(self, warehouse_id, material_type_id, thickness: str) -> StockRecord | None:
        stmt = select(StockRecord).where(
            StockRecord.warehouse_id == as_uuid(warehouse_id),
            StockRecord.material_type_id == as_uuid(material_type_id),
            StockRecord.thickness == thickness,
        )
        return self.db.execute(stmt).scalars().first()

    def get_fresh(self, record_id) -> StockRecord | None:
        return self.db.get(StockRecord, as_uuid(record_id), populate_existing=True)

    def list_for_warehouse(self, warehouse_id) -> list[StockRecord]:
        stmt = (
            select(StockRecord)
            .where(StockRecord.warehouse_id == as_uuid(warehouse_id))
            .order_by(StockRecord.material_type_id, StockRecord.thickness)
        )
        return self.db.execute(stmt).scalars().all()

    def list_for_active_warehouses(self) -> list[tuple[StockRecord, Warehouse]]:
        stmt = (
            select(StockRecord, Warehouse)
            .join(Warehouse, Warehouse.id == StockRecord.warehouse_id)
            .where(Warehouse.status == "ACTIVE")
            .order_by(Warehouse.code, StockRecord.thickness)
        )
        return [(record, warehouse) for record, warehouse in self.db.execute(stmt).all()]

    def list_with_minimum_level(self) -> list[tuple[StockRecord, Warehouse]]:
        stmt = (
            select(StockRecord, Warehouse)
            .join(Warehouse, Warehouse.id == StockRecord.warehouse_id)
            .where(
                Warehouse.status == "ACTIVE",
                Warehouse.stock_control_enabled.is_(True),
                StockRecord.minimum_stock_level.is_not(None),
            )
            .order_by(Warehouse.code, StockRecord.thickness)
        )
        return [(record, warehouse) for record, warehouse in self.db.execute(stmt).all()]

    def list_adjustments(self, *, warehouse_id=None, limit: int = 100) -> list[StockAdjustment]:
        stmt = select(StockAdjustment)
        if warehouse_id:
            stmt = stmt.where(StockAdjustment.warehouse_id == as_uuid(warehouse_id))
        stmt = stmt.order_by(StockAdjustment.adjusted_at.desc()).limit(limit)
        return self.db.execute(stmt).scalars().all()

    def list_movements(self, filters: MovementQueryFilters, *, limit: int = 500) -> list[StockMovement]:
        stmt = select(StockMovement)
        if filters.warehouse_id:
            stmt = stmt.where(StockMovement.warehouse_id == as_uuid(filters.warehouse_id))
        if filters.material_type_id:
            stmt = stmt.where(StockMovement.material_type_id == as_uuid(filters.material_type_id))
        if filters.thickness:
            stmt = stmt.where(StockMovement.thickness == filters.thickness)
        if filters.movement_type:
            stmt = stmt.where(StockMovement.movement_type == filters.movement_type)
        if filters.days:
            stmt = stmt.where(StockMovement.created_at >= datetime.utcnow() - timedelta(days=filters.days))
        stmt = stmt.order_by(StockMovement.created_at.desc()).limit(limit)
        return self.db.execute(stmt).scalars().all()
