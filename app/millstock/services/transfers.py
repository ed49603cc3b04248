"""Transfer Engine: lifecycle of a transfer and its ledger effects.

PENDING --approve--> IN_TRANSIT --complete--> COMPLETED
PENDING --reject--> REJECTED, PENDING --cancel--> CANCELLED
create() may skip PENDING: straight to IN_TRANSIT when the source tracks stock,
or to APPROVED (no ledger effect) when it does not. APPROVED --complete--> COMPLETED.

Each transition runs inside one unit of work. The status change itself is a
conditional ``UPDATE ... WHERE status IN (...)`` so a transfer can only leave a
state once, however many requests race for it. Notifications go out after commit.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import update

from app.millstock.core.error_catalog import (
    InsufficientStockError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from app.millstock.core.logging import log_event
from app.millstock.core.metrics import metrics
from app.millstock.db.enums import (
    TERMINAL_TRANSFER_STATUSES,
    MovementType,
    ReferenceType,
    StockBucket,
    TransferHistoryAction,
    TransferStatus,
    WarehouseStatus,
    WoodStatus,
    bucket_for,
)
from app.millstock.db.models import MAX_STOCK_QUANTITY, Transfer, TransferHistory, TransferItem, Warehouse
from app.millstock.db.uow import run_in_transaction
from app.millstock.repos.ids import as_uuid
from app.millstock.repos.stock import StockRepository
from app.millstock.repos.transfers import TransferQueryFilters, TransferRepository
from app.millstock.repos.warehouses import MaterialTypeRepository, WarehouseRepository
from app.millstock.services.approval_policy import ApprovalPolicy, DispatchPlan
from app.millstock.services.ledger import StockLedger, bucket_value
from app.millstock.services.notifications import NotificationPublisher, TransferEvent, publish_safely
from app.millstock.services.transfer_numbers import TransferNumberGenerator

logger = logging.getLogger(__name__)

_UNSET = object()

_EVENT_TYPES = {
    "create": "TRANSFER_CREATED",
    "approve": "TRANSFER_APPROVED",
    "reject": "TRANSFER_REJECTED",
    "complete": "TRANSFER_COMPLETED",
    "cancel": "TRANSFER_CANCELLED",
}

_OPEN_STATUSES = frozenset(TransferStatus) - TERMINAL_TRANSFER_STATUSES


@dataclass(frozen=True)
class TransferItemInput:
    material_type_id: str
    thickness: str
    quantity: int
    wood_status: str
    remarks: str | None = None


@dataclass(frozen=True)
class TransferCreateCommand:
    from_warehouse_id: str
    to_warehouse_id: str
    items: list[TransferItemInput] = field(default_factory=list)
    transfer_date: datetime | None = None
    notes: str | None = None
    notify_user_id: str | None = None


def _naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _append_note(notes: str | None, line: str) -> str:
    return f"{notes}\n{line}" if notes else line


def _actor_name(actor) -> str | None:
    return getattr(actor, "full_name", None) or getattr(actor, "username", None)


def _same_id(left, right) -> bool:
    left_id, right_id = as_uuid(left), as_uuid(right)
    if left_id is None or right_id is None:
        return str(left) == str(right)
    return left_id == right_id


class TransferEngine:
    def __init__(
        self,
        db,
        *,
        policy: ApprovalPolicy | None = None,
        publisher: NotificationPublisher | None = None,
        numbers: TransferNumberGenerator | None = None,
    ):
        self.db = db
        self.repo = TransferRepository(db)
        self.stock = StockRepository(db)
        self.warehouses = WarehouseRepository(db)
        self.materials = MaterialTypeRepository(db)
        self.ledger = StockLedger(db)
        self.policy = policy or ApprovalPolicy()
        self.publisher = publisher
        self.numbers = numbers or TransferNumberGenerator(db)

    # reads

    def get(self, transfer_id) -> Transfer:
        transfer = self.repo.get_transfer(transfer_id, fresh=True)
        if transfer is None:
            raise NotFoundError("Transfer", transfer_id)
        return transfer

    def list_transfers(self, filters: TransferQueryFilters | None = None) -> list[Transfer]:
        return self.repo.list_transfers(filters or TransferQueryFilters())

    def history(self, transfer_id) -> list[TransferHistory]:
        transfer = self.get(transfer_id)
        return self.repo.get_history(transfer.id)

    def pending_approvals(self, source_warehouse_ids=None) -> list[Transfer]:
        return self.repo.list_pending(source_warehouse_ids)

    # validation

    def _require_warehouse(self, warehouse_id, *, role: str) -> Warehouse:
        if not warehouse_id:
            raise ValidationError(f"{role}WarehouseId is required")
        warehouse = self.warehouses.get(warehouse_id)
        if warehouse is None:
            raise NotFoundError("Warehouse", warehouse_id)
        return warehouse

    def _validate_items(self, items) -> list[TransferItemInput]:
        if not items:
            raise ValidationError("at least one item is required")
        for index, item in enumerate(items):
            if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity <= 0:
                raise ValidationError("quantity must be a positive integer", index=index, quantity=item.quantity)
            if item.quantity > MAX_STOCK_QUANTITY:
                raise ValidationError(
                    "quantity is too large", index=index, quantity=item.quantity, maximum=MAX_STOCK_QUANTITY
                )
            if not item.thickness:
                raise ValidationError("thickness is required", index=index)
            try:
                WoodStatus(item.wood_status)
            except ValueError:
                raise ValidationError("unknown woodStatus", index=index, woodStatus=str(item.wood_status)) from None
        material_ids = {str(item.material_type_id) for item in items}
        known = self.materials.get_many(material_ids)
        for material_id in material_ids:
            parsed = as_uuid(material_id)
            if parsed is None or str(parsed) not in known:
                raise NotFoundError("MaterialType", material_id)
        return list(items)

    def _validate_create(self, command: TransferCreateCommand) -> tuple[Warehouse, Warehouse, list[TransferItemInput]]:
        if not command.from_warehouse_id or not command.to_warehouse_id:
            raise ValidationError("fromWarehouseId and toWarehouseId are required")
        if _same_id(command.from_warehouse_id, command.to_warehouse_id):
            raise ValidationError(
                "source and destination warehouses must differ",
                fromWarehouseId=str(command.from_warehouse_id),
                toWarehouseId=str(command.to_warehouse_id),
            )
        items = self._validate_items(command.items)
        source = self._require_warehouse(command.from_warehouse_id, role="from")
        destination = self._require_warehouse(command.to_warehouse_id, role="to")
        for warehouse in (source, destination):
            if warehouse.status != WarehouseStatus.ACTIVE.value:
                raise ValidationError("warehouse is not active", warehouseId=str(warehouse.id), status=warehouse.status)
        return source, destination, items

    def _check_availability(self, source: Warehouse, items) -> None:
        required: dict[tuple[str, str, StockBucket], int] = defaultdict(int)
        for item in items:
            required[(str(as_uuid(item.material_type_id)), item.thickness, bucket_for(item.wood_status))] += item.quantity
        for (material_type_id, thickness, bucket), quantity in required.items():
            record = self.stock.get_by_key(source.id, material_type_id, thickness)
            available = bucket_value(record, bucket) if record is not None else 0
            if available < quantity:
                raise InsufficientStockError(
                    available=available,
                    requested=quantity,
                    warehouse_id=str(source.id),
                    material_type_id=material_type_id,
                    thickness=thickness,
                    bucket=bucket.value,
                )

    # transaction steps

    def _load(self, transfer_id) -> Transfer:
        return self.get(transfer_id)

    def _endpoints(self, transfer: Transfer) -> tuple[Warehouse, Warehouse]:
        source = self.warehouses.get(transfer.from_warehouse_id)
        destination = self.warehouses.get(transfer.to_warehouse_id)
        if source is None:
            raise NotFoundError("Warehouse", transfer.from_warehouse_id)
        if destination is None:
            raise NotFoundError("Warehouse", transfer.to_warehouse_id)
        return source, destination

    @staticmethod
    def _require_status(transfer: Transfer, action: str, allowed) -> None:
        if transfer.status not in {status.value for status in allowed}:
            raise InvalidStateTransitionError(action=action, status=transfer.status)

    def _claim(self, transfer: Transfer, *, action: str, allowed, values: dict) -> None:
        stmt = (
            update(Transfer)
            .where(Transfer.id == transfer.id, Transfer.status.in_([status.value for status in allowed]))
            .values(updated_at=datetime.utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if self.db.execute(stmt).rowcount != 1:
            current = self.repo.get_transfer(transfer.id, fresh=True)
            metrics.increment_ledger_conflict()
            raise InvalidStateTransitionError(action=action, status=current.status if current else "UNKNOWN")

    def _add_history(self, transfer_id, action: TransferHistoryAction, actor, details: str | None = None) -> None:
        self.db.add(
            TransferHistory(
                transfer_id=transfer_id,
                sequence=self.repo.next_history_sequence(transfer_id),
                action=action.value,
                actor_id=getattr(actor, "id", None),
                actor_name=_actor_name(actor),
                details=details,
            )
        )
        self.db.flush()

    def _dispatch(
        self,
        transfer: Transfer,
        source: Warehouse,
        destination: Warehouse,
        plan: DispatchPlan,
        actor,
    ) -> None:
        for item in transfer.items:
            bucket = bucket_for(item.wood_status)
            source_record = self.ledger.get_or_create(source.id, item.material_type_id, item.thickness)
            self.ledger.withdraw(source_record, bucket, item.quantity)
            self.ledger.adjust_bucket(source_record, StockBucket.IN_TRANSIT_OUT, item.quantity)
            self.ledger.record_movement(
                movement_type=MovementType.TRANSFER_DISPATCH,
                record=source_record,
                quantity_change=-item.quantity,
                from_bucket=bucket,
                to_bucket=StockBucket.IN_TRANSIT_OUT,
                reference_type=ReferenceType.TRANSFER,
                reference_id=transfer.id,
                reference_number=transfer.transfer_number,
                actor_id=getattr(actor, "id", None),
                details=f"dispatched to {destination.code}",
            )
            if plan.destination_ledger:
                destination_record = self.ledger.get_or_create(destination.id, item.material_type_id, item.thickness)
                self.ledger.adjust_bucket(destination_record, StockBucket.IN_TRANSIT_IN, item.quantity)

    def _receive(self, transfer: Transfer, source: Warehouse, destination: Warehouse, actor) -> None:
        receive_into_destination = self.policy.tracks_stock(destination)
        for item in transfer.items:
            bucket = bucket_for(item.wood_status)
            if transfer.source_ledger_applied:
                source_record = self.ledger.get_or_create(source.id, item.material_type_id, item.thickness)
                self.ledger.adjust_bucket(source_record, StockBucket.IN_TRANSIT_OUT, -item.quantity)
                self.ledger.record_movement(
                    movement_type=MovementType.TRANSFER_OUT,
                    record=source_record,
                    quantity_change=-item.quantity,
                    from_bucket=StockBucket.IN_TRANSIT_OUT,
                    reference_type=ReferenceType.TRANSFER,
                    reference_id=transfer.id,
                    reference_number=transfer.transfer_number,
                    actor_id=getattr(actor, "id", None),
                    details=f"received by {destination.code}",
                )
            if not (transfer.destination_ledger_applied or receive_into_destination):
                continue
            destination_record = self.ledger.get_or_create(destination.id, item.material_type_id, item.thickness)
            if transfer.destination_ledger_applied:
                self.ledger.adjust_bucket(destination_record, StockBucket.IN_TRANSIT_IN, -item.quantity)
            if receive_into_destination:
                self.ledger.adjust_bucket(destination_record, bucket, item.quantity)
                self.ledger.record_movement(
                    movement_type=MovementType.TRANSFER_IN,
                    record=destination_record,
                    quantity_change=item.quantity,
                    from_bucket=StockBucket.IN_TRANSIT_IN if transfer.destination_ledger_applied else None,
                    to_bucket=bucket,
                    reference_type=ReferenceType.TRANSFER,
                    reference_id=transfer.id,
                    reference_number=transfer.transfer_number,
                    actor_id=getattr(actor, "id", None),
                    details=f"from {source.code}",
                )

    def _after_commit(
        self,
        action: str,
        transfer: Transfer,
        actor,
        *,
        from_status: str | None,
        notify_user_id: str | None = None,
    ) -> None:
        metrics.increment_transfer_transition(action)
        log_event(
            logger,
            "transfer_transition",
            action=action,
            transfer_id=str(transfer.id),
            transfer_number=transfer.transfer_number,
            from_status=from_status,
            to_status=transfer.status,
            actor_id=str(getattr(actor, "id", "") or ""),
            source_ledger_applied=transfer.source_ledger_applied,
            destination_ledger_applied=transfer.destination_ledger_applied,
        )
        event_type = _EVENT_TYPES.get(action)
        if event_type is None:
            return
        publish_safely(
            self.publisher,
            TransferEvent(
                type=event_type,
                transfer_id=str(transfer.id),
                transfer_number=transfer.transfer_number,
                from_warehouse_id=str(transfer.from_warehouse_id),
                to_warehouse_id=str(transfer.to_warehouse_id),
                actor_id=str(actor.id) if getattr(actor, "id", None) else None,
                status=transfer.status,
                notify_user_id=str(notify_user_id) if notify_user_id else None,
            ),
        )

    # transitions

    def create(self, command: TransferCreateCommand, *, actor) -> Transfer:
        source, destination, items = self._validate_create(command)
        decision = self.policy.on_create(source, destination)
        plan = self.policy.dispatch_plan(source, destination)

        def work():
            if self.policy.tracks_stock(source):
                self._check_availability(source, items)
            now = datetime.utcnow()
            transfer = Transfer(
                transfer_number=self.numbers.next_number(now.date()),
                from_warehouse_id=source.id,
                to_warehouse_id=destination.id,
                status=decision.initial_status.value,
                transfer_date=_naive_utc(command.transfer_date) or now,
                notes=command.notes,
                created_by_id=actor.id,
                source_ledger_applied=decision.apply_ledger and plan.source_ledger,
                destination_ledger_applied=decision.apply_ledger and plan.destination_ledger,
            )
            if decision.auto_approved:
                transfer.approved_by_id = actor.id
                transfer.approved_at = now
            for line_number, item in enumerate(items, start=1):
                transfer.items.append(
                    TransferItem(
                        line_number=line_number,
                        material_type_id=as_uuid(item.material_type_id),
                        thickness=item.thickness,
                        quantity=item.quantity,
                        wood_status=WoodStatus(item.wood_status).value,
                        remarks=item.remarks,
                    )
                )
            self.db.add(transfer)
            self.db.flush()
            self._add_history(
                transfer.id,
                TransferHistoryAction.CREATED,
                actor,
                f"{source.code} -> {destination.code}, {len(items)} item(s)",
            )
            if decision.auto_approved:
                self._add_history(transfer.id, TransferHistoryAction.APPROVED, actor, "auto-approved")
            if decision.apply_ledger:
                self._dispatch(transfer, source, destination, plan, actor)
            return transfer.id

        transfer_id = run_in_transaction(self.db, work, operation="transfer.create")
        transfer = self._load(transfer_id)
        self._after_commit("create", transfer, actor, from_status=None, notify_user_id=command.notify_user_id)
        return transfer

    def approve(self, transfer_id, *, actor) -> Transfer:
        def work():
            transfer = self._load(transfer_id)
            self._require_status(transfer, "approve", {TransferStatus.PENDING})
            source, destination = self._endpoints(transfer)
            plan = self.policy.dispatch_plan(source, destination)
            if plan.source_ledger:
                self._check_availability(source, transfer.items)
            self._claim(
                transfer,
                action="approve",
                allowed={TransferStatus.PENDING},
                values={
                    "status": TransferStatus.IN_TRANSIT.value,
                    "approved_by_id": actor.id,
                    "approved_at": datetime.utcnow(),
                    "source_ledger_applied": plan.source_ledger,
                    "destination_ledger_applied": plan.destination_ledger,
                },
            )
            self._add_history(transfer.id, TransferHistoryAction.APPROVED, actor)
            if plan.source_ledger:
                self._dispatch(transfer, source, destination, plan, actor)
            return transfer.id

        committed_id = run_in_transaction(self.db, work, operation="transfer.approve")
        transfer = self._load(committed_id)
        self._after_commit("approve", transfer, actor, from_status=TransferStatus.PENDING.value)
        return transfer

    def reject(self, transfer_id, *, actor, reason: str | None = None) -> Transfer:
        def work():
            transfer = self._load(transfer_id)
            self._require_status(transfer, "reject", {TransferStatus.PENDING})
            notes = _append_note(transfer.notes, f"REJECTED: {reason}") if reason else transfer.notes
            self._claim(
                transfer,
                action="reject",
                allowed={TransferStatus.PENDING},
                values={
                    "status": TransferStatus.REJECTED.value,
                    "approved_by_id": actor.id,
                    "approved_at": datetime.utcnow(),
                    "notes": notes,
                },
            )
            self._add_history(transfer.id, TransferHistoryAction.REJECTED, actor, reason)
            return transfer.id

        committed_id = run_in_transaction(self.db, work, operation="transfer.reject")
        transfer = self._load(committed_id)
        self._after_commit("reject", transfer, actor, from_status=TransferStatus.PENDING.value)
        return transfer

    def complete(self, transfer_id, *, actor, notify_user_id: str | None = None) -> Transfer:
        allowed = {TransferStatus.IN_TRANSIT, TransferStatus.APPROVED}

        def work():
            transfer = self._load(transfer_id)
            self._require_status(transfer, "complete", allowed)
            from_status = transfer.status
            source, destination = self._endpoints(transfer)
            self._claim(
                transfer,
                action="complete",
                allowed=allowed,
                values={
                    "status": TransferStatus.COMPLETED.value,
                    "completed_by_id": actor.id,
                    "completed_at": datetime.utcnow(),
                },
            )
            self._receive(transfer, source, destination, actor)
            self._add_history(transfer.id, TransferHistoryAction.COMPLETED, actor)
            return transfer.id, from_status

        committed_id, from_status = run_in_transaction(self.db, work, operation="transfer.complete")
        transfer = self._load(committed_id)
        self._after_commit("complete", transfer, actor, from_status=from_status, notify_user_id=notify_user_id)
        return transfer

    def cancel(self, transfer_id, *, actor, reason: str | None = None) -> Transfer:
        def work():
            transfer = self._load(transfer_id)
            self._require_status(transfer, "cancel", {TransferStatus.PENDING})
            notes = _append_note(transfer.notes, f"CANCELLED: {reason}") if reason else transfer.notes
            self._claim(
                transfer,
                action="cancel",
                allowed={TransferStatus.PENDING},
                values={"status": TransferStatus.CANCELLED.value, "notes": notes},
            )
            self._add_history(transfer.id, TransferHistoryAction.CANCELLED, actor, reason)
            return transfer.id

        committed_id = run_in_transaction(self.db, work, operation="transfer.cancel")
        transfer = self._load(committed_id)
        self._after_commit("cancel", transfer, actor, from_status=TransferStatus.PENDING.value)
        return transfer

    def edit(self, transfer_id, *, actor, notes=_UNSET, transfer_date: datetime | None = None) -> Transfer:
        """Change header fields only; items, warehouses and status stay as they are."""

        def work():
            transfer = self._load(transfer_id)
            self._require_status(transfer, "edit", _OPEN_STATUSES)
            changes: dict = {}
            described: list[str] = []
            if notes is not _UNSET and notes != transfer.notes:
                changes["notes"] = notes
                described.append("notes updated")
            new_date = _naive_utc(transfer_date)
            if new_date is not None and new_date != transfer.transfer_date:
                changes["transfer_date"] = new_date
                described.append(f"transfer date {transfer.transfer_date:%Y-%m-%d} -> {new_date:%Y-%m-%d}")
            if not changes:
                return transfer.id, transfer.status, False
            self._claim(transfer, action="edit", allowed=_OPEN_STATUSES, values=changes)
            self._add_history(transfer.id, TransferHistoryAction.EDITED, actor, "; ".join(described))
            return transfer.id, transfer.status, True

        committed_id, status, changed = run_in_transaction(self.db, work, operation="transfer.edit")
        transfer = self._load(committed_id)
        if changed:
            self._after_commit("edit", transfer, actor, from_status=status)
        return transfer
