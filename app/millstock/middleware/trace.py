import re
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.millstock.core.context import bind_trace_id, reset_trace_id

TRACE_HEADER = "X-Trace-ID"
FALLBACK_TRACE_HEADERS = ("X-Request-ID",)

# Stored in audit_events.trace_id (64 chars) and echoed back verbatim.
_TRACE_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


def resolve_trace_id(headers) -> str:
    for header in (TRACE_HEADER, *FALLBACK_TRACE_HEADERS):
        candidate = (headers.get(header) or "").strip()
        if candidate and _TRACE_ID_PATTERN.match(candidate):
            return candidate
    return str(uuid.uuid4())


class TraceIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        trace_id = resolve_trace_id(request.headers)
        request.state.trace_id = trace_id
        token = bind_trace_id(trace_id)
        try:
            response: Response = await call_next(request)
        finally:
            reset_trace_id(token)
        response.headers[TRACE_HEADER] = trace_id
        return response
