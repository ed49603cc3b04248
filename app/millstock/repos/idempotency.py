from datetime import datetime

from sqlalchemy import select, update

from app.millstock.db.models import IdempotencyRecord
from app.millstock.repos.ids import as_uuid


class IdempotencyRepository:
    def __init__(self, db):
        self.db = db

    def get(self, *, user_id, endpoint: str, method: str, idempotency_key: str) -> IdempotencyRecord | None:
        stmt = select(IdempotencyRecord).where(
            IdempotencyRecord.user_id == as_uuid(user_id),
            IdempotencyRecord.endpoint == endpoint,
            IdempotencyRecord.method == method,
            IdempotencyRecord.idempotency_key == idempotency_key,
        )
        return self.db.execute(stmt).scalars().first()

    def save(self, record: IdempotencyRecord) -> IdempotencyRecord:
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def reclaim(self, record: IdempotencyRecord, *, from_state: str, to_state: str) -> bool:
        """Flip ``record`` back to ``to_state`` only if nobody else reclaimed it first."""
        result = self.db.execute(
            update(IdempotencyRecord)
            .where(IdempotencyRecord.id == record.id, IdempotencyRecord.state == from_state)
            .values(state=to_state, status_code=None, response_body=None, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount != 1:
            return False
        self.db.refresh(record)
        return True
