import json
import logging
from types import SimpleNamespace

from starlette.requests import Request
from starlette.responses import Response

from app.millstock.core.context import bind_trace_id, reset_trace_id
from app.millstock.core.db_timing import DbTiming
from app.millstock.core.logging import log_event
from app.millstock.middleware.observability import build_request_log_payload, log_level_for


def _request(path: str) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": path,
        "headers": [],
        "route": SimpleNamespace(path="/millstock/transfers/{transfer_id}/approve"),
    }
    return Request(scope)


def test_build_request_log_payload():
    request = _request("/millstock/transfers/abc/approve")
    request.state.trace_id = "trace-1"
    request.state.user_id = "user-1"
    request.state.role = "WAREHOUSE_MANAGER"
    request.state.error_code = None
    response = Response(status_code=200)

    payload = build_request_log_payload(
        request=request,
        response=response,
        latency_ms=12.3456,
        db_timing=DbTiming(elapsed_ms=4.5678, queries=3),
    )

    assert payload["event"] == "http_request"
    assert payload["trace_id"] == "trace-1"
    assert payload["user_id"] == "user-1"
    assert payload["role"] == "WAREHOUSE_MANAGER"
    assert payload["route"] == "/millstock/transfers/{transfer_id}/approve"
    assert payload["method"] == "POST"
    assert payload["status_code"] == 200
    assert payload["latency_ms"] == 12.35
    assert payload["db_time_ms"] == 4.57
    assert payload["db_queries"] == 3


def test_build_request_log_payload_without_response():
    request = _request("/millstock/transfers/abc/approve")
    request.state.error_code = "INTERNAL_ERROR"
    request.state.error_class = "RuntimeError"

    payload = build_request_log_payload(request=request, response=None, latency_ms=1.0, db_timing=None)

    assert payload["status_code"] == 500
    assert payload["trace_id"] == ""
    assert payload["db_time_ms"] is None
    assert payload["db_queries"] is None
    assert payload["error_code"] == "INTERNAL_ERROR"
    assert payload["error_class"] == "RuntimeError"


def test_log_level_follows_status_and_route():
    base = {"route": "/millstock/transfers", "status_code": 201}

    assert log_level_for(base) == logging.INFO
    assert log_level_for({**base, "status_code": 503}) == logging.ERROR
    assert log_level_for({"route": "/health", "status_code": 200}) == logging.DEBUG
    assert log_level_for({"route": "/ready", "status_code": 503}) == logging.ERROR


def test_log_event_carries_bound_trace_id(caplog):
    logger = logging.getLogger("millstock.test")
    token = bind_trace_id("trace-ctx")
    try:
        with caplog.at_level(logging.INFO, logger="millstock.test"):
            log_event(logger, "stock_adjusted", warehouse_id="w-1")
            log_event(logger, "stock_adjusted", trace_id="explicit")
    finally:
        reset_trace_id(token)

    first, second = (json.loads(record.getMessage()) for record in caplog.records)
    assert first == {"event": "stock_adjusted", "warehouse_id": "w-1", "trace_id": "trace-ctx"}
    assert second["trace_id"] == "explicit"
