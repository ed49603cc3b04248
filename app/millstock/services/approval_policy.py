from __future__ import annotations

from dataclasses import dataclass

from app.millstock.db.enums import TransferStatus
from app.millstock.db.models import Warehouse


@dataclass(frozen=True)
class CreateDecision:
    initial_status: TransferStatus
    auto_approved: bool
    apply_ledger: bool


@dataclass(frozen=True)
class DispatchPlan:
    source_ledger: bool
    destination_ledger: bool


class ApprovalPolicy:
    """Decisions driven by the two per-warehouse flags.

    ``stock_control_enabled`` gates every ledger write for a warehouse and
    ``requires_approval`` gates whether a new transfer waits at PENDING. The two
    flags are independent.
    """

    @staticmethod
    def tracks_stock(warehouse: Warehouse) -> bool:
        return bool(warehouse.stock_control_enabled)

    @staticmethod
    def needs_approval(warehouse: Warehouse) -> bool:
        return bool(warehouse.requires_approval)

    def dispatch_plan(self, source: Warehouse, destination: Warehouse) -> DispatchPlan:
        source_ledger = self.tracks_stock(source)
        return DispatchPlan(
            source_ledger=source_ledger,
            destination_ledger=source_ledger and self.tracks_stock(destination),
        )

    def on_create(self, source: Warehouse, destination: Warehouse) -> CreateDecision:
        if self.needs_approval(source):
            return CreateDecision(TransferStatus.PENDING, auto_approved=False, apply_ledger=False)
        if self.tracks_stock(source):
            return CreateDecision(TransferStatus.IN_TRANSIT, auto_approved=True, apply_ledger=True)
        return CreateDecision(TransferStatus.APPROVED, auto_approved=True, apply_ledger=False)
