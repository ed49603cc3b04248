from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field

from app.millstock.db.enums import WoodStatus
from app.millstock.db.models import MAX_STOCK_QUANTITY
from app.millstock.schemas.common import CamelModel


_TRANSFER_CREATE_EXAMPLE = {
    "fromWarehouseId": "4f1c6a0e-5d7b-4c55-9a2e-0d7e6f0b1a11",
    "toWarehouseId": "9b2d7e3c-1a4f-4e88-8c31-5e6f7a8b9c22",
    "transferDate": "2026-03-02T08:00:00",
    "notes": "Truck 3, morning run",
    "items": [
        {
            "materialTypeId": "0c9e8d7f-6a5b-4c3d-2e1f-0a9b8c7d6e33",
            "thickness": "2in",
            "quantity": 30,
            "woodStatus": "NOT_DRIED",
            "remarks": None,
        }
    ],
}


class TransferItemCreate(CamelModel):
    material_type_id: str
    thickness: str = Field(min_length=1, max_length=50)
    quantity: int = Field(gt=0, le=MAX_STOCK_QUANTITY)
    wood_status: WoodStatus
    remarks: str | None = None


class TransferCreateRequest(CamelModel):
    from_warehouse_id: str
    to_warehouse_id: str
    transfer_date: datetime | None = None
    notes: str | None = None
    notify_user_id: str | None = None
    items: list[TransferItemCreate] = Field(min_length=1)

    model_config = {"json_schema_extra": {"example": _TRANSFER_CREATE_EXAMPLE}}


class TransferUpdateRequest(CamelModel):
    notes: str | None = None
    transfer_date: datetime | None = None


class TransferRejectRequest(CamelModel):
    rejection_reason: str | None = None


class TransferCancelRequest(CamelModel):
    reason: str | None = None


class TransferCompleteRequest(CamelModel):
    notify_user_id: str | None = None


class TransferItemResponse(CamelModel):
    id: UUID
    line_number: int
    material_type_id: UUID
    thickness: str
    quantity: int
    wood_status: str
    remarks: str | None


class TransferHistoryResponse(CamelModel):
    sequence: int
    action: str
    actor_id: UUID | None
    actor_name: str | None
    details: str | None
    created_at: datetime


class TransferResponse(CamelModel):
    id: UUID
    transfer_number: str
    from_warehouse_id: UUID
    to_warehouse_id: UUID
    status: str
    transfer_date: datetime
    notes: str | None
    created_by_id: UUID
    approved_by_id: UUID | None
    approved_at: datetime | None
    completed_by_id: UUID | None
    completed_at: datetime | None
    source_ledger_applied: bool
    destination_ledger_applied: bool
    created_at: datetime
    updated_at: datetime
    items: list[TransferItemResponse]
    history: list[TransferHistoryResponse] | None = None


class TransferListResponse(CamelModel):
    rows: list[TransferResponse]


class TransferHistoryListResponse(CamelModel):
    transfer_id: UUID
    rows: list[TransferHistoryResponse]
