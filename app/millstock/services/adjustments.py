from __future__ import annotations

import logging
from dataclasses import dataclass

from app.millstock.core.config import settings
from app.millstock.core.error_catalog import NotFoundError, ValidationError
from app.millstock.core.logging import log_event
from app.millstock.db.enums import AdjustmentReason, MovementType, ReferenceType, WoodStatus, bucket_for
from app.millstock.db.models import MAX_STOCK_QUANTITY, StockAdjustment, StockRecord
from app.millstock.db.uow import run_in_transaction
from app.millstock.repos.stock import StockRepository
from app.millstock.repos.warehouses import MaterialTypeRepository, WarehouseRepository
from app.millstock.services.ledger import StockLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockAdjustmentCommand:
    warehouse_id: str
    material_type_id: str
    thickness: str
    wood_status: str
    quantity_after: int
    reason: str
    notes: str | None = None


class StockAdjustmentJournal:
    """Authoritative recount corrections, each paired with exactly one ledger write."""

    def __init__(self, db):
        self.db = db
        self.ledger = StockLedger(db)
        self.stock = StockRepository(db)
        self.warehouses = WarehouseRepository(db)
        self.materials = MaterialTypeRepository(db)

    def _validate_key(self, warehouse_id, material_type_id, thickness: str) -> None:
        if self.warehouses.get(warehouse_id) is None:
            raise NotFoundError("Warehouse", warehouse_id)
        if self.materials.get(material_type_id) is None:
            raise NotFoundError("MaterialType", material_type_id)
        if not thickness:
            raise ValidationError("thickness is required")

    def _validate(self, command: StockAdjustmentCommand) -> tuple[WoodStatus, AdjustmentReason]:
        try:
            wood_status = WoodStatus(command.wood_status)
        except ValueError:
            raise ValidationError("unknown woodStatus", woodStatus=str(command.wood_status)) from None
        try:
            reason = AdjustmentReason(command.reason)
        except ValueError:
            raise ValidationError("unknown reason", reason=str(command.reason)) from None
        if isinstance(command.quantity_after, bool) or not isinstance(command.quantity_after, int):
            raise ValidationError("quantityAfter must be an integer", quantityAfter=command.quantity_after)
        if command.quantity_after < 0:
            raise ValidationError("quantityAfter must not be negative", quantityAfter=command.quantity_after)
        if command.quantity_after > MAX_STOCK_QUANTITY:
            raise ValidationError(
                "quantityAfter is too large", quantityAfter=command.quantity_after, maximum=MAX_STOCK_QUANTITY
            )
        self._validate_key(command.warehouse_id, command.material_type_id, command.thickness)
        return wood_status, reason

    def adjust(self, command: StockAdjustmentCommand, *, actor) -> StockAdjustment:
        wood_status, reason = self._validate(command)
        bucket = bucket_for(wood_status)

        def work():
            record = self.ledger.get_or_create(command.warehouse_id, command.material_type_id, command.thickness)
            before, after = self.ledger.set_bucket(record, bucket, command.quantity_after)
            adjustment = StockAdjustment(
                warehouse_id=record.warehouse_id,
                material_type_id=record.material_type_id,
                thickness=record.thickness,
                wood_status=wood_status.value,
                quantity_before=before,
                quantity_after=after,
                quantity_change=after - before,
                reason=reason.value,
                notes=command.notes,
                adjusted_by_id=actor.id,
            )
            self.db.add(adjustment)
            self.db.flush()
            self.ledger.record_movement(
                movement_type=MovementType.ADJUSTMENT,
                record=record,
                quantity_change=after - before,
                to_bucket=bucket,
                reference_type=ReferenceType.ADJUSTMENT,
                reference_id=adjustment.id,
                actor_id=actor.id,
                details=reason.value,
            )
            return adjustment.id

        adjustment_id = run_in_transaction(self.db, work, operation="stock.adjust")
        adjustment = self.db.get(StockAdjustment, adjustment_id)
        log_event(
            logger,
            "stock_adjusted",
            adjustment_id=str(adjustment.id),
            warehouse_id=str(adjustment.warehouse_id),
            material_type_id=str(adjustment.material_type_id),
            thickness=adjustment.thickness,
            wood_status=adjustment.wood_status,
            quantity_before=adjustment.quantity_before,
            quantity_after=adjustment.quantity_after,
            quantity_change=adjustment.quantity_change,
            reason=adjustment.reason,
            actor_id=str(actor.id),
        )
        return adjustment

    def list_adjustments(self, *, warehouse_id=None, limit: int | None = None) -> list[StockAdjustment]:
        return self.stock.list_adjustments(
            warehouse_id=warehouse_id,
            limit=limit or settings.STOCK_ADJUSTMENTS_LIST_LIMIT,
        )

    def set_minimum_level(
        self,
        warehouse_id,
        material_type_id,
        thickness: str,
        minimum_stock_level: int | None,
    ) -> StockRecord:
        if minimum_stock_level is not None and minimum_stock_level < 0:
            raise ValidationError("minimumStockLevel must not be negative", minimumStockLevel=minimum_stock_level)
        if minimum_stock_level is not None and minimum_stock_level > MAX_STOCK_QUANTITY:
            raise ValidationError(
                "minimumStockLevel is too large", minimumStockLevel=minimum_stock_level, maximum=MAX_STOCK_QUANTITY
            )
        self._validate_key(warehouse_id, material_type_id, thickness)

        def work():
            record = self.ledger.get_or_create(warehouse_id, material_type_id, thickness)
            return self.ledger.set_minimum_level(record, minimum_stock_level).id

        record_id = run_in_transaction(self.db, work, operation="stock.minimum_level")
        return self.stock.get_fresh(record_id)
