from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request

from app.millstock.core.deps import (
    assigned_warehouse_ids,
    ensure_warehouse_scope,
    get_notification_publisher,
    require_active_user,
    require_permission,
)
from app.millstock.db.enums import TransferStatus
from app.millstock.db.session import get_db
from app.millstock.repos.transfers import TransferQueryFilters
from app.millstock.routers.common import finish_idempotent_request, record_audit, start_idempotent_request
from app.millstock.schemas.transfers import (
    TransferCancelRequest,
    TransferCompleteRequest,
    TransferCreateRequest,
    TransferHistoryListResponse,
    TransferHistoryResponse,
    TransferListResponse,
    TransferRejectRequest,
    TransferResponse,
    TransferUpdateRequest,
)
from app.millstock.services.transfers import TransferCreateCommand, TransferEngine, TransferItemInput


router = APIRouter()


def _engine(db, publisher=None) -> TransferEngine:
    return TransferEngine(db, publisher=publisher)


def _transfer_response(transfer, *, include_history: bool = False) -> TransferResponse:
    response = TransferResponse.model_validate(transfer)
    if not include_history:
        response.history = None
    return response


def _respond(request: Request, db, current_user, transfer, *, action: str, status_code: int = 200) -> TransferResponse:
    response = _transfer_response(transfer)
    body = response.model_dump(mode="json", by_alias=True)
    finish_idempotent_request(request, status_code, body)
    record_audit(
        request,
        db,
        current_user,
        action=f"transfer.{action}",
        entity_type="transfer",
        entity_id=str(transfer.id),
        after={"status": transfer.status, "transfer_number": transfer.transfer_number},
    )
    return response


@router.get("/millstock/transfers", response_model=TransferListResponse)
def list_transfers(
    status: TransferStatus | None = Query(default=None),
    warehouse_id: str | None = Query(default=None, alias="warehouseId"),
    from_date: datetime | None = Query(default=None, alias="fromDate"),
    to_date: datetime | None = Query(default=None, alias="toDate"),
    _context=Depends(require_permission("TRANSFER_VIEW")),
    db=Depends(get_db),
):
    filters = TransferQueryFilters(
        status=status.value if status else None,
        warehouse_id=warehouse_id,
        from_date=from_date,
        to_date=to_date,
    )
    rows = _engine(db).list_transfers(filters)
    return TransferListResponse(rows=[_transfer_response(transfer) for transfer in rows])


@router.get("/millstock/transfers/pending-approvals", response_model=TransferListResponse)
def pending_approvals(
    current_user=Depends(require_active_user),
    _context=Depends(require_permission("TRANSFER_APPROVE")),
    db=Depends(get_db),
):
    rows = _engine(db).pending_approvals(assigned_warehouse_ids(db, current_user))
    return TransferListResponse(rows=[_transfer_response(transfer) for transfer in rows])


@router.get("/millstock/transfers/{transfer_id}", response_model=TransferResponse)
def get_transfer_detail(
    transfer_id: str,
    _context=Depends(require_permission("TRANSFER_VIEW")),
    db=Depends(get_db),
):
    return _transfer_response(_engine(db).get(transfer_id), include_history=True)


@router.get("/millstock/transfers/{transfer_id}/history", response_model=TransferHistoryListResponse)
def get_transfer_history(
    transfer_id: str,
    _context=Depends(require_permission("TRANSFER_VIEW")),
    db=Depends(get_db),
):
    engine = _engine(db)
    transfer = engine.get(transfer_id)
    rows = engine.history(transfer.id)
    return TransferHistoryListResponse(
        transfer_id=transfer.id,
        rows=[TransferHistoryResponse.model_validate(entry) for entry in rows],
    )


@router.post("/millstock/transfers", response_model=TransferResponse, status_code=201)
def create_transfer(
    request: Request,
    payload: TransferCreateRequest,
    current_user=Depends(require_active_user),
    _context=Depends(require_permission("TRANSFER_CREATE")),
    publisher=Depends(get_notification_publisher),
    db=Depends(get_db),
):
    replay = start_idempotent_request(request, db, current_user, payload)
    if replay is not None:
        return replay
    command = TransferCreateCommand(
        from_warehouse_id=payload.from_warehouse_id,
        to_warehouse_id=payload.to_warehouse_id,
        transfer_date=payload.transfer_date,
        notes=payload.notes,
        notify_user_id=payload.notify_user_id,
        items=[
            TransferItemInput(
                material_type_id=item.material_type_id,
                thickness=item.thickness,
                quantity=item.quantity,
                wood_status=item.wood_status,
                remarks=item.remarks,
            )
            for item in payload.items
        ],
    )
    transfer = _engine(db, publisher).create(command, actor=current_user)
    return _respond(request, db, current_user, transfer, action="create", status_code=201)


@router.patch("/millstock/transfers/{transfer_id}", response_model=TransferResponse)
def update_transfer(
    transfer_id: str,
    request: Request,
    payload: TransferUpdateRequest,
    current_user=Depends(require_active_user),
    _context=Depends(require_permission("TRANSFER_EDIT")),
    db=Depends(get_db),
):
    replay = start_idempotent_request(request, db, current_user, payload)
    if replay is not None:
        return replay
    changes = {}
    if "notes" in payload.model_fields_set:
        changes["notes"] = payload.notes
    if payload.transfer_date is not None:
        changes["transfer_date"] = payload.transfer_date
    transfer = _engine(db).edit(transfer_id, actor=current_user, **changes)
    return _respond(request, db, current_user, transfer, action="edit")


@router.post("/millstock/transfers/{transfer_id}/approve", response_model=TransferResponse)
def approve_transfer(
    transfer_id: str,
    request: Request,
    current_user=Depends(require_active_user),
    _context=Depends(require_permission("TRANSFER_APPROVE")),
    publisher=Depends(get_notification_publisher),
    db=Depends(get_db),
):
    engine = _engine(db, publisher)
    ensure_warehouse_scope(db, current_user, engine.get(transfer_id).from_warehouse_id)
    replay = start_idempotent_request(request, db, current_user, None)
    if replay is not None:
        return replay
    transfer = engine.approve(transfer_id, actor=current_user)
    return _respond(request, db, current_user, transfer, action="approve")


@router.post("/millstock/transfers/{transfer_id}/reject", response_model=TransferResponse)
def reject_transfer(
    transfer_id: str,
    request: Request,
    payload: TransferRejectRequest | None = None,
    current_user=Depends(require_active_user),
    _context=Depends(require_permission("TRANSFER_APPROVE")),
    publisher=Depends(get_notification_publisher),
    db=Depends(get_db),
):
    payload = payload or TransferRejectRequest()
    engine = _engine(db, publisher)
    ensure_warehouse_scope(db, current_user, engine.get(transfer_id).from_warehouse_id)
    replay = start_idempotent_request(request, db, current_user, payload)
    if replay is not None:
        return replay
    transfer = engine.reject(transfer_id, actor=current_user, reason=payload.rejection_reason)
    return _respond(request, db, current_user, transfer, action="reject")


@router.post("/millstock/transfers/{transfer_id}/complete", response_model=TransferResponse)
def complete_transfer(
    transfer_id: str,
    request: Request,
    payload: TransferCompleteRequest | None = None,
    current_user=Depends(require_active_user),
    _context=Depends(require_permission("TRANSFER_COMPLETE")),
    publisher=Depends(get_notification_publisher),
    db=Depends(get_db),
):
    payload = payload or TransferCompleteRequest()
    replay = start_idempotent_request(request, db, current_user, payload)
    if replay is not None:
        return replay
    transfer = _engine(db, publisher).complete(
        transfer_id,
        actor=current_user,
        notify_user_id=payload.notify_user_id,
    )
    return _respond(request, db, current_user, transfer, action="complete")


@router.post("/millstock/transfers/{transfer_id}/cancel", response_model=TransferResponse)
def cancel_transfer(
    transfer_id: str,
    request: Request,
    payload: TransferCancelRequest | None = None,
    current_user=Depends(require_active_user),
    _context=Depends(require_permission("TRANSFER_CREATE")),
    publisher=Depends(get_notification_publisher),
    db=Depends(get_db),
):
    payload = payload or TransferCancelRequest()
    replay = start_idempotent_request(request, db, current_user, payload)
    if replay is not None:
        return replay
    transfer = _engine(db, publisher).cancel(transfer_id, actor=current_user, reason=payload.reason)
    return _respond(request, db, current_user, transfer, action="cancel")
