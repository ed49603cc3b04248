from __future__ import annotations

from enum import Enum


class WarehouseStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class WoodStatus(str, Enum):
    NOT_DRIED = "NOT_DRIED"
    UNDER_DRYING = "UNDER_DRYING"
    DRIED = "DRIED"
    DAMAGED = "DAMAGED"


class StockBucket(str, Enum):
    NOT_DRIED = "NOT_DRIED"
    UNDER_DRYING = "UNDER_DRYING"
    DRIED = "DRIED"
    DAMAGED = "DAMAGED"
    IN_TRANSIT_OUT = "IN_TRANSIT_OUT"
    IN_TRANSIT_IN = "IN_TRANSIT_IN"


class TransferStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    IN_TRANSIT = "IN_TRANSIT"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


TERMINAL_TRANSFER_STATUSES = frozenset(
    {TransferStatus.COMPLETED, TransferStatus.REJECTED, TransferStatus.CANCELLED}
)


class TransferHistoryAction(str, Enum):
    CREATED = "CREATED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EDITED = "EDITED"


class AdjustmentReason(str, Enum):
    DAMAGED = "DAMAGED"
    LOST = "LOST"
    FOUND_EXTRA = "FOUND_EXTRA"
    COUNTING_ERROR = "COUNTING_ERROR"
    OTHER = "OTHER"


class MovementType(str, Enum):
    TRANSFER_DISPATCH = "TRANSFER_DISPATCH"
    TRANSFER_OUT = "TRANSFER_OUT"
    TRANSFER_IN = "TRANSFER_IN"
    ADJUSTMENT = "ADJUSTMENT"


class ReferenceType(str, Enum):
    TRANSFER = "TRANSFER"
    ADJUSTMENT = "ADJUSTMENT"


WOOD_STATUS_BUCKETS: dict[WoodStatus, StockBucket] = {
    WoodStatus.NOT_DRIED: StockBucket.NOT_DRIED,
    WoodStatus.UNDER_DRYING: StockBucket.UNDER_DRYING,
    WoodStatus.DRIED: StockBucket.DRIED,
    WoodStatus.DAMAGED: StockBucket.DAMAGED,
}

IN_TRANSIT_BUCKETS = frozenset({StockBucket.IN_TRANSIT_OUT, StockBucket.IN_TRANSIT_IN})


def bucket_for(wood_status: WoodStatus | str) -> StockBucket:
    return WOOD_STATUS_BUCKETS[WoodStatus(wood_status)]
