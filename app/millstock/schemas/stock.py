from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field

from app.millstock.db.enums import AdjustmentReason, WoodStatus
from app.millstock.db.models import MAX_STOCK_QUANTITY
from app.millstock.schemas.common import CamelModel


class StockRecordResponse(CamelModel):
    id: UUID
    warehouse_id: UUID
    material_type_id: UUID
    thickness: str
    not_dried: int
    under_drying: int
    dried: int
    damaged: int
    in_transit_out: int
    in_transit_in: int
    minimum_stock_level: int | None
    is_low_stock: bool = False
    updated_at: datetime


class WarehouseStockResponse(CamelModel):
    warehouse_id: UUID
    rows: list[StockRecordResponse]


class ConsolidatedWarehouseQuantity(CamelModel):
    warehouse_id: str
    warehouse_code: str
    warehouse_name: str
    not_dried: int
    under_drying: int
    dried: int
    damaged: int


class ConsolidatedStockRow(CamelModel):
    material_type_id: str
    thickness: str
    not_dried: int
    under_drying: int
    dried: int
    damaged: int
    in_transit: int
    warehouses: list[ConsolidatedWarehouseQuantity]


class ConsolidatedStockResponse(CamelModel):
    rows: list[ConsolidatedStockRow]


class LowStockAlertResponse(CamelModel):
    stock_record_id: UUID
    warehouse_id: UUID
    warehouse_code: str
    warehouse_name: str
    material_type_id: UUID
    thickness: str
    not_dried: int
    dried: int
    current_stock: int
    minimum_stock_level: int
    shortfall: int


class LowStockAlertListResponse(CamelModel):
    rows: list[LowStockAlertResponse]


class MinimumLevelRequest(CamelModel):
    warehouse_id: str
    material_type_id: str
    thickness: str = Field(min_length=1, max_length=50)
    minimum_stock_level: int | None = Field(default=None, ge=0, le=MAX_STOCK_QUANTITY)


class StockAdjustRequest(CamelModel):
    warehouse_id: str
    material_type_id: str
    thickness: str = Field(min_length=1, max_length=50)
    wood_status: WoodStatus
    quantity_after: int = Field(ge=0, le=MAX_STOCK_QUANTITY)
    reason: AdjustmentReason
    notes: str | None = None


class StockAdjustmentResponse(CamelModel):
    id: UUID
    warehouse_id: UUID
    material_type_id: UUID
    thickness: str
    wood_status: str
    quantity_before: int
    quantity_after: int
    quantity_change: int
    reason: str
    notes: str | None
    adjusted_by_id: UUID
    adjusted_at: datetime


class StockAdjustmentListResponse(CamelModel):
    rows: list[StockAdjustmentResponse]


class StockMovementResponse(CamelModel):
    id: UUID
    movement_type: str
    warehouse_id: UUID
    material_type_id: UUID
    thickness: str
    quantity_change: int
    from_bucket: str | None
    to_bucket: str | None
    reference_type: str
    reference_id: UUID
    reference_number: str | None
    actor_id: UUID | None
    details: str | None
    created_at: datetime


class StockMovementListResponse(CamelModel):
    rows: list[StockMovementResponse]
