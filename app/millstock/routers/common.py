from fastapi import Request
from fastapi.responses import JSONResponse

from app.millstock.core.error_catalog import ErrorCatalog
from app.millstock.core.metrics import metrics
from app.millstock.services.audit import AuditEntry, AuditService
from app.millstock.services.idempotency import (
    IdempotencyScope,
    IdempotencyService,
    extract_idempotency_key,
    fingerprint,
)


def trace_id_of(request: Request) -> str:
    return getattr(request.state, "trace_id", "")


def start_idempotent_request(request: Request, db, current_user, payload) -> JSONResponse | None:
    """Replay a finished request with the same ``Idempotency-Key``, or register this one."""
    idempotency_key = extract_idempotency_key(request.headers)
    if not idempotency_key:
        return None
    body = payload.model_dump(mode="json") if payload is not None else {}
    scope = IdempotencyScope(
        user_id=str(current_user.id),
        endpoint=str(request.url.path),
        method=request.method,
        key=idempotency_key,
    )
    context, replay = IdempotencyService(db).start(scope, fingerprint(body))
    if replay:
        metrics.increment_idempotency_replay()
        return JSONResponse(
            status_code=replay.status_code,
            content=replay.response_body,
            headers={"X-Idempotency-Result": ErrorCatalog.IDEMPOTENCY_REPLAY.code},
        )
    request.state.idempotency = context
    return None


def finish_idempotent_request(request: Request, status_code: int, response_body: dict) -> None:
    context = getattr(request.state, "idempotency", None)
    if context is not None:
        context.record_success(status_code=status_code, response_body=response_body)


def record_audit(
    request: Request,
    db,
    current_user,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None,
    after: dict | None,
    metadata: dict | None = None,
) -> None:
    AuditService(db).record(
        AuditEntry.for_user(
            current_user,
            action,
            entity_type=entity_type,
            entity_id=entity_id,
            after=after,
            metadata=metadata or {},
            trace_id=trace_id_of(request) or None,
        )
    )
