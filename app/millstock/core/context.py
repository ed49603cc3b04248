from contextvars import ContextVar, Token
from dataclasses import dataclass

_current_trace_id: ContextVar[str] = ContextVar("millstock_trace_id", default="")


@dataclass(frozen=True)
class RequestContext:
    user_id: str | None
    role: str | None
    trace_id: str


def bind_trace_id(trace_id: str) -> Token:
    return _current_trace_id.set(trace_id)


def reset_trace_id(token: Token) -> None:
    _current_trace_id.reset(token)


def current_trace_id() -> str:
    """Trace id of the request being served, or "" outside a request (CLI, tests)."""
    return _current_trace_id.get()


def build_request_context(*, user_id: str | None, role: str | None, trace_id: str | None = None) -> RequestContext:
    return RequestContext(user_id=user_id, role=role, trace_id=trace_id if trace_id is not None else current_trace_id())

