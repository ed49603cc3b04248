from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.millstock.core.db_timing import DbTiming, get_db_timing, start_db_timer, stop_db_timer
from app.millstock.core.logging import log_json
from app.millstock.core.metrics import metrics

logger = logging.getLogger("millstock.request")

PROBE_ROUTES = frozenset({"/health", "/ready", "/millstock/ops/metrics"})


def _route_template(request: Request) -> str:
    scope_route = request.scope.get("route")
    return getattr(scope_route, "path", None) or request.url.path


def build_request_log_payload(
    *,
    request: Request,
    response: Response | None,
    latency_ms: float,
    db_timing: DbTiming | None,
) -> dict:
    state = request.state
    payload = {
        "event": "http_request",
        "trace_id": getattr(state, "trace_id", ""),
        "user_id": getattr(state, "user_id", None),
        "role": getattr(state, "role", None),
        "route": _route_template(request),
        "method": request.method,
        "status_code": response.status_code if response is not None else 500,
        "latency_ms": round(latency_ms, 2),
        "db_time_ms": None,
        "db_queries": None,
        "error_code": getattr(state, "error_code", None),
        "error_class": getattr(state, "error_class", None),
    }
    if db_timing is not None:
        payload["db_time_ms"] = round(db_timing.elapsed_ms, 2)
        payload["db_queries"] = db_timing.queries
    return payload


def log_level_for(payload: dict) -> int:
    if payload["status_code"] >= 500:
        return logging.ERROR
    if payload["route"] in PROBE_ROUTES:
        return logging.DEBUG
    return logging.INFO


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        timer = start_db_timer()
        response: Response | None = None
        try:
            response = await call_next(request)
            return response
        finally:
            latency_ms = (time.perf_counter() - started) * 1000
            payload = build_request_log_payload(
                request=request,
                response=response,
                latency_ms=latency_ms,
                db_timing=get_db_timing(),
            )
            stop_db_timer(timer)
            log_json(logger, payload, level=log_level_for(payload))
            metrics.record_http_request(
                route=payload["route"],
                method=payload["method"],
                status_code=payload["status_code"],
                latency_ms=latency_ms,
            )
