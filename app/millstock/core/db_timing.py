from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass


@dataclass
class DbTiming:
    elapsed_ms: float = 0.0
    queries: int = 0


_db_timing: ContextVar[DbTiming | None] = ContextVar("db_timing", default=None)


def start_db_timer() -> object:
    return _db_timing.set(DbTiming())


def stop_db_timer(token: object) -> None:
    _db_timing.reset(token)


def is_timing() -> bool:
    return _db_timing.get() is not None


def add_db_time(delta_ms: float) -> None:
    timing = _db_timing.get()
    if timing is None:
        return
    timing.elapsed_ms += delta_ms
    timing.queries += 1


def get_db_timing() -> DbTiming | None:
    return _db_timing.get()
