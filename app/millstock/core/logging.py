from __future__ import annotations

import json
import logging

from app.millstock.core.context import current_trace_id


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format="%(message)s")


def log_json(logger: logging.Logger, payload: dict, *, level: int = logging.INFO) -> None:
    if not logger.isEnabledFor(level):
        return
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields) -> None:
    """Emit ``{"event": ..., **fields}``; the current request's trace id is added unless given."""
    payload = {"event": event, **fields}
    trace_id = current_trace_id()
    if trace_id:
        payload.setdefault("trace_id", trace_id)
    log_json(logger, payload, level=level)
