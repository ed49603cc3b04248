"""Caller-side de-duplication of mutating requests.

A key is scoped to (user, endpoint, method). The first request claims the key;
a later request with the same key either replays the stored response or, if
the payload differs, is rejected. Responses of transient storage failures
(5xx) are not replayed: the key can be reused to retry the operation.
"""

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy.exc import IntegrityError

from app.millstock.core.error_catalog import AppError, ErrorCatalog
from app.millstock.db.models import IdempotencyRecord
from app.millstock.repos.idempotency import IdempotencyRepository
from app.millstock.repos.ids import as_uuid

IDEMPOTENCY_HEADER = "Idempotency-Key"


class IdempotencyState(str, Enum):
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class IdempotencyScope:
    user_id: str
    endpoint: str
    method: str
    key: str

    def lookup(self) -> dict:
        return {"user_id": self.user_id, "endpoint": self.endpoint, "method": self.method, "idempotency_key": self.key}


@dataclass
class IdempotencyReplay:
    status_code: int
    response_body: dict


class IdempotencyContext:
    """Handle of a claimed key; the request stores its outcome through it."""

    def __init__(self, record: IdempotencyRecord, repo: IdempotencyRepository):
        self._record = record
        self._repo = repo

    def _finish(self, state: IdempotencyState, status_code: int, response_body: dict) -> None:
        self._record.state = state.value
        self._record.status_code = status_code
        self._record.response_body = json.dumps(response_body, default=str)
        self._record.updated_at = datetime.utcnow()
        self._repo.save(self._record)

    def record_success(self, *, status_code: int, response_body: dict) -> None:
        self._finish(IdempotencyState.SUCCEEDED, status_code, response_body)

    def record_failure(self, *, status_code: int, response_body: dict) -> None:
        self._finish(IdempotencyState.FAILED, status_code, response_body)


def fingerprint(payload: object) -> str:
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class IdempotencyService:
    def __init__(self, db):
        self.repo = IdempotencyRepository(db)

    def start(
        self, scope: IdempotencyScope, request_hash: str
    ) -> tuple[IdempotencyContext | None, IdempotencyReplay | None]:
        existing = self.repo.get(**scope.lookup())
        if existing is not None:
            return self._resume(existing, request_hash)
        record = IdempotencyRecord(
            user_id=as_uuid(scope.user_id),
            endpoint=scope.endpoint,
            method=scope.method,
            idempotency_key=scope.key,
            request_hash=request_hash,
            state=IdempotencyState.IN_PROGRESS.value,
        )
        try:
            record = self.repo.save(record)
        except IntegrityError:
            # Lost the insert race to a concurrent request with the same key.
            self.repo.db.rollback()
            return self._resume(self.repo.get(**scope.lookup()), request_hash)
        return IdempotencyContext(record, self.repo), None

    def _resume(
        self, existing: IdempotencyRecord | None, request_hash: str
    ) -> tuple[IdempotencyContext | None, IdempotencyReplay | None]:
        if existing is None:
            raise AppError(ErrorCatalog.IDEMPOTENCY_REQUEST_IN_PROGRESS)
        if existing.request_hash != request_hash:
            raise AppError(ErrorCatalog.IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD)
        if existing.state == IdempotencyState.FAILED.value and (existing.status_code or 500) >= 500:
            if self.repo.reclaim(
                existing, from_state=IdempotencyState.FAILED.value, to_state=IdempotencyState.IN_PROGRESS.value
            ):
                return IdempotencyContext(existing, self.repo), None
            raise AppError(ErrorCatalog.IDEMPOTENCY_REQUEST_IN_PROGRESS)
        if existing.state == IdempotencyState.IN_PROGRESS.value or existing.response_body is None:
            raise AppError(ErrorCatalog.IDEMPOTENCY_REQUEST_IN_PROGRESS)
        return None, IdempotencyReplay(status_code=existing.status_code, response_body=json.loads(existing.response_body))


def extract_idempotency_key(headers) -> str | None:
    key = (headers.get(IDEMPOTENCY_HEADER) or "").strip()
    return key or None
