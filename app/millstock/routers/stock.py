from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from app.millstock.core.deps import require_active_user, require_permission
from app.millstock.db.enums import MovementType
from app.millstock.db.session import get_db
from app.millstock.repos.stock import MovementQueryFilters
from app.millstock.routers.common import finish_idempotent_request, record_audit, start_idempotent_request
from app.millstock.schemas.stock import (
    ConsolidatedStockResponse,
    ConsolidatedStockRow,
    LowStockAlertListResponse,
    LowStockAlertResponse,
    MinimumLevelRequest,
    StockAdjustmentListResponse,
    StockAdjustmentResponse,
    StockAdjustRequest,
    StockMovementListResponse,
    StockMovementResponse,
    StockRecordResponse,
    WarehouseStockResponse,
)
from app.millstock.services.adjustments import StockAdjustmentCommand, StockAdjustmentJournal
from app.millstock.services.ledger import is_low_stock
from app.millstock.services.stock_views import StockQueryService


router = APIRouter()


def _record_response(record) -> StockRecordResponse:
    response = StockRecordResponse.model_validate(record)
    response.is_low_stock = is_low_stock(record)
    return response


@router.get("/millstock/stock/warehouses/{warehouse_id}", response_model=WarehouseStockResponse)
def warehouse_stock(
    warehouse_id: str,
    _context=Depends(require_permission("STOCK_VIEW")),
    db=Depends(get_db),
):
    records = StockQueryService(db).warehouse_stock(warehouse_id)
    return WarehouseStockResponse(
        warehouse_id=warehouse_id,
        rows=[_record_response(record) for record in records],
    )


@router.get("/millstock/stock/consolidated", response_model=ConsolidatedStockResponse)
def consolidated_stock(
    _context=Depends(require_permission("STOCK_VIEW")),
    db=Depends(get_db),
):
    rows = StockQueryService(db).consolidated()
    return ConsolidatedStockResponse(
        rows=[
            ConsolidatedStockRow(
                material_type_id=row.material_type_id,
                thickness=row.thickness,
                not_dried=row.not_dried,
                under_drying=row.under_drying,
                dried=row.dried,
                damaged=row.damaged,
                in_transit=row.in_transit,
                warehouses=row.warehouses,
            )
            for row in rows
        ]
    )


@router.get("/millstock/stock/alerts", response_model=LowStockAlertListResponse)
def low_stock_alerts(
    _context=Depends(require_permission("STOCK_VIEW")),
    db=Depends(get_db),
):
    alerts = StockQueryService(db).low_stock_alerts()
    return LowStockAlertListResponse(
        rows=[
            LowStockAlertResponse(
                stock_record_id=alert.record.id,
                warehouse_id=alert.record.warehouse_id,
                warehouse_code=alert.warehouse_code,
                warehouse_name=alert.warehouse_name,
                material_type_id=alert.record.material_type_id,
                thickness=alert.record.thickness,
                not_dried=alert.record.not_dried,
                dried=alert.record.dried,
                current_stock=alert.current_stock,
                minimum_stock_level=alert.record.minimum_stock_level,
                shortfall=alert.shortfall,
            )
            for alert in alerts
        ]
    )


@router.put("/millstock/stock/minimum-level", response_model=StockRecordResponse)
def set_minimum_level(
    request: Request,
    payload: MinimumLevelRequest,
    current_user=Depends(require_active_user),
    _context=Depends(require_permission("STOCK_ADJUST")),
    db=Depends(get_db),
):
    record = StockAdjustmentJournal(db).set_minimum_level(
        payload.warehouse_id,
        payload.material_type_id,
        payload.thickness,
        payload.minimum_stock_level,
    )
    response = _record_response(record)
    record_audit(
        request,
        db,
        current_user,
        action="stock.minimum_level",
        entity_type="stock_record",
        entity_id=str(response.id),
        after={"minimum_stock_level": response.minimum_stock_level},
    )
    return response


@router.post("/millstock/stock/adjust", response_model=StockAdjustmentResponse, status_code=201)
def adjust_stock(
    request: Request,
    payload: StockAdjustRequest,
    current_user=Depends(require_active_user),
    _context=Depends(require_permission("STOCK_ADJUST")),
    db=Depends(get_db),
):
    replay = start_idempotent_request(request, db, current_user, payload)
    if replay is not None:
        return replay
    adjustment = StockAdjustmentJournal(db).adjust(
        StockAdjustmentCommand(
            warehouse_id=payload.warehouse_id,
            material_type_id=payload.material_type_id,
            thickness=payload.thickness,
            wood_status=payload.wood_status,
            quantity_after=payload.quantity_after,
            reason=payload.reason,
            notes=payload.notes,
        ),
        actor=current_user,
    )
    response = StockAdjustmentResponse.model_validate(adjustment)
    finish_idempotent_request(request, 201, response.model_dump(mode="json", by_alias=True))
    record_audit(
        request,
        db,
        current_user,
        action="stock.adjust",
        entity_type="stock_adjustment",
        entity_id=str(response.id),
        after={
            "quantity_before": response.quantity_before,
            "quantity_after": response.quantity_after,
            "quantity_change": response.quantity_change,
        },
    )
    return response


@router.get("/millstock/stock/adjustments", response_model=StockAdjustmentListResponse)
def list_adjustments(
    warehouse_id: str | None = Query(default=None, alias="warehouseId"),
    _context=Depends(require_permission("STOCK_VIEW")),
    db=Depends(get_db),
):
    rows = StockAdjustmentJournal(db).list_adjustments(warehouse_id=warehouse_id)
    return StockAdjustmentListResponse(rows=[StockAdjustmentResponse.model_validate(row) for row in rows])


@router.get("/millstock/stock/movements", response_model=StockMovementListResponse)
def list_movements(
    warehouse_id: str | None = Query(default=None, alias="warehouseId"),
    material_type_id: str | None = Query(default=None, alias="materialTypeId"),
    thickness: str | None = Query(default=None),
    movement_type: MovementType | None = Query(default=None, alias="movementType"),
    days: int | None = Query(default=None, ge=1),
    _context=Depends(require_permission("STOCK_VIEW")),
    db=Depends(get_db),
):
    filters = MovementQueryFilters(
        warehouse_id=warehouse_id,
        material_type_id=material_type_id,
        thickness=thickness,
        movement_type=movement_type.value if movement_type else None,
        days=days,
    )
    rows = StockQueryService(db).movements(filters)
    return StockMovementListResponse(rows=[StockMovementResponse.model_validate(row) for row in rows])
