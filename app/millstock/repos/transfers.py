from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.orm import selectinload

from app.millstock.db.models import Transfer, TransferHistory
from app.millstock.repos.ids import as_uuid


@dataclass(frozen=True)
class TransferQueryFilters:
    status: str | None = None
    warehouse_id: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None


class TransferRepository:
    def __init__(self, db):
        self.db = db

    def _base_query(self):
        return select(Transfer).options(selectinload(Transfer.items))

    def list_transfers(self, filters: TransferQueryFilters) -> list[Transfer]:
        query = self._base_query()
        if filters.status:
            query = query.where(Transfer.status == filters.status)
        if filters.warehouse_id:
            warehouse_id = as_uuid(filters.warehouse_id)
            query = query.where(
                or_(Transfer.from_warehouse_id == warehouse_id, Transfer.to_warehouse_id == warehouse_id)
            )
        if filters.from_date:
            query = query.where(Transfer.transfer_date >= filters.from_date)
        if filters.to_date:
            query = query.where(Transfer.transfer_date <= filters.to_date)
        return self.db.execute(query.order_by(Transfer.created_at.desc())).scalars().all()

    def list_pending(self, source_warehouse_ids=None) -> list[Transfer]:
        query = self._base_query().where(Transfer.status == "PENDING")
        if source_warehouse_ids is not None:
            ids = [parsed for parsed in (as_uuid(value) for value in source_warehouse_ids) if parsed is not None]
            if not ids:
                return []
            query = query.where(Transfer.from_warehouse_id.in_(ids))
        return self.db.execute(query.order_by(Transfer.created_at.asc())).scalars().all()

    def get_transfer(self, transfer_id, *, fresh: bool = False) -> Transfer | None:
        parsed = as_uuid(transfer_id)
        if parsed is None:
            return None
        query = self._base_query().where(Transfer.id == parsed)
        if fresh:
            query = query.execution_options(populate_existing=True)
        return self.db.execute(query).scalars().first()

    def get_history(self, transfer_id) -> list[TransferHistory]:
        return (
            self.db.execute(
                select(TransferHistory)
                .where(TransferHistory.transfer_id == as_uuid(transfer_id))
                .order_by(TransferHistory.sequence)
            )
            .scalars()
            .all()
        )

    def next_history_sequence(self, transfer_id) -> int:
        current = self.db.execute(
            select(func.coalesce(func.max(TransferHistory.sequence), 0)).where(
                TransferHistory.transfer_id == as_uuid(transfer_id)
            )
        ).scalar_one()
        return int(current) + 1
