from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field

from app.millstock.core.error_catalog import NotFoundError
from app.millstock.db.models import StockRecord
from app.millstock.repos.stock import MovementQueryFilters, StockRepository
from app.millstock.repos.warehouses import WarehouseRepository
from app.millstock.services.ledger import is_low_stock


@dataclass
class LowStockAlert:
    record: StockRecord
    warehouse_code: str
    warehouse_name: str
    current_stock: int
    shortfall: int


@dataclass
class ConsolidatedRow:
    material_type_id: str
    thickness: str
    not_dried: int = 0
    under_drying: int = 0
    dried: int = 0
    damaged: int = 0
    in_transit: int = 0
    warehouses: list[dict] = field(default_factory=list)


class StockQueryService:
    def __init__(self, db):
        self.db = db
        self.repo = StockRepository(db)
        self.warehouses = WarehouseRepository(db)

    def warehouse_stock(self, warehouse_id) -> list[StockRecord]:
        if self.warehouses.get(warehouse_id) is None:
            raise NotFoundError("Warehouse", warehouse_id)
        return self.repo.list_for_warehouse(warehouse_id)

    def consolidated(self) -> list[ConsolidatedRow]:
        grouped: "OrderedDict[tuple[str, str], ConsolidatedRow]" = OrderedDict()
        for record, warehouse in self.repo.list_for_active_warehouses():
            key = (str(record.material_type_id), record.thickness)
            row = grouped.get(key)
            if row is None:
                row = grouped[key] = ConsolidatedRow(material_type_id=key[0], thickness=key[1])
            row.not_dried += record.not_dried
            row.under_drying += record.under_drying
            row.dried += record.dried
            row.damaged += record.damaged
            row.in_transit += record.in_transit_out + record.in_transit_in
            row.warehouses.append(
                {
                    "warehouseId": str(warehouse.id),
                    "warehouseCode": warehouse.code,
                    "warehouseName": warehouse.name,
                    "notDried": record.not_dried,
                    "underDrying": record.under_drying,
                    "dried": record.dried,
                    "damaged": record.damaged,
                }
            )
        return list(grouped.values())

    def low_stock_alerts(self) -> list[LowStockAlert]:
        alerts = []
        for record, warehouse in self.repo.list_with_minimum_level():
            if not is_low_stock(record):
                continue
            current = record.not_dried + record.dried
            alerts.append(
                LowStockAlert(
                    record=record,
                    warehouse_code=warehouse.code,
                    warehouse_name=warehouse.name,
                    current_stock=current,
                    shortfall=record.minimum_stock_level - current,
                )
            )
        return alerts

    def movements(self, filters: MovementQueryFilters):
        return self.repo.list_movements(filters)
