from __future__ import annotations

import re
from datetime import date, datetime

from sqlalchemy import insert, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from app.millstock.core.config import settings
from app.millstock.db.models import TransferSequence

_NUMBER_PATTERN = re.compile(r"^(?P<prefix>[A-Z]+)-(?P<day>\d{8})-(?P<seq>\d{4,})$")


def format_transfer_number(day: date, sequence: int, *, prefix: str | None = None) -> str:
    return f"{prefix or settings.TRANSFER_NUMBER_PREFIX}-{day:%Y%m%d}-{sequence:04d}"


def parse_transfer_number(value: str) -> tuple[str, date, int] | None:
    match = _NUMBER_PATTERN.match(value or "")
    if not match:
        return None
    day = datetime.strptime(match.group("day"), "%Y%m%d").date()
    return match.group("prefix"), day, int(match.group("seq"))


class TransferNumberGenerator:
    """Per-day monotonic sequence backed by one ``transfer_sequences`` row per day."""

    def __init__(self, db, *, prefix: str | None = None):
        self.db = db
        self.prefix = prefix or settings.TRANSFER_NUMBER_PREFIX

    def _ensure_day_row(self, day: date) -> None:
        dialect = self.db.get_bind().dialect.name
        if dialect == "sqlite":
            stmt = sqlite_insert(TransferSequence).values(day=day, last_value=0).on_conflict_do_nothing(
                index_elements=["day"]
            )
        elif dialect == "postgresql":
            stmt = postgresql_insert(TransferSequence).values(day=day, last_value=0).on_conflict_do_nothing(
                index_elements=["day"]
            )
        else:
            exists = self.db.execute(select(TransferSequence.day).where(TransferSequence.day == day)).first()
            if exists:
                return
            stmt = insert(TransferSequence).values(day=day, last_value=0)
        self.db.execute(stmt)

    def next_value(self, day: date) -> int:
        self._ensure_day_row(day)
        self.db.execute(
            update(TransferSequence)
            .where(TransferSequence.day == day)
            .values(last_value=TransferSequence.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        return int(
            self.db.execute(select(TransferSequence.last_value).where(TransferSequence.day == day)).scalar_one()
        )

    def next_number(self, day: date | None = None) -> str:
        day = day or datetime.utcnow().date()
        return format_transfer_number(day, self.next_value(day), prefix=self.prefix)
