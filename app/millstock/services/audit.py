import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from app.millstock.core.context import current_trace_id
from app.millstock.core.logging import log_event
from app.millstock.db.models import AuditEvent
from app.millstock.repos.ids import as_uuid

logger = logging.getLogger(__name__)

RESULT_SUCCESS = "success"
RESULT_FAILURE = "failure"


@dataclass
class AuditEntry:
    action: str
    actor: str
    entity_type: str
    entity_id: str | None = None
    user_id: str | None = None
    actor_role: str | None = None
    after: dict | None = None
    metadata: dict = field(default_factory=dict)
    result: str = RESULT_SUCCESS
    trace_id: str | None = None

    @classmethod
    def for_user(cls, user, action: str, **fields) -> "AuditEntry":
        return cls(action=action, actor=user.username, user_id=str(user.id), actor_role=user.role, **fields)


class AuditService:
    """Writes ``audit_events`` rows after the business transaction has committed.

    The audit trail is best-effort: a failed write is logged and dropped, the
    stock movement it describes stays committed.
    """

    def __init__(self, db):
        self.db = db

    def record(self, entry: AuditEntry) -> None:
        metadata = {**entry.metadata, "actor_role": entry.actor_role} if entry.actor_role else dict(entry.metadata)
        event = AuditEvent(
            user_id=as_uuid(entry.user_id),
            trace_id=entry.trace_id or current_trace_id() or None,
            actor=entry.actor,
            action=entry.action,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            after_payload=entry.after,
            event_metadata=metadata or None,
            result=entry.result,
            created_at=datetime.utcnow(),
        )
        try:
            self.db.add(event)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            log_event(
                logger,
                "audit_write_failed",
                level=logging.ERROR,
                action=entry.action,
                entity_id=entry.entity_id,
                error_class=exc.__class__.__name__,
            )
