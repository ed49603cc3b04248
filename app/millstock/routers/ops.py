from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.millstock.core.error_catalog import ErrorCatalog
from app.millstock.core.errors import error_response
from app.millstock.core.metrics import metrics
from app.millstock.db.session import get_db
from app.millstock.routers.common import trace_id_of

router = APIRouter()
metrics_router = APIRouter()


@router.get("/health")
async def health(request: Request):
    return {"status": "ok", "trace_id": trace_id_of(request)}


@router.get("/ready")
def ready(request: Request, db=Depends(get_db)):
    """Ready once the ledger tables answer a query; a bare ``SELECT 1`` passes before migrations."""
    try:
        db.execute(text("SELECT 1 FROM stock_records LIMIT 1"))
    except SQLAlchemyError as exc:
        definition = ErrorCatalog.DB_UNAVAILABLE
        return error_response(
            code=definition.code,
            message=definition.message,
            details={"type": exc.__class__.__name__},
            trace_id=trace_id_of(request),
            status_code=definition.status_code,
        )
    return {"status": "ready", "database": db.get_bind().dialect.name, "trace_id": trace_id_of(request)}


@metrics_router.get("/millstock/ops/metrics", include_in_schema=False)
def prometheus_metrics() -> Response:
    snapshot = metrics.render()
    return Response(content=snapshot.content, media_type=snapshot.content_type, headers={"Cache-Control": "no-store"})
