import time

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.millstock.core.config import settings
from app.millstock.core.db_timing import add_db_time, is_timing


def _connect_args(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        # Waiting writers block on the busy handler instead of failing at once.
        return {"check_same_thread": False, "timeout": settings.DB_BUSY_TIMEOUT_MS / 1000}
    return {}


def _install_query_timing(target: Engine) -> None:
    @event.listens_for(target, "before_cursor_execute")
    def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        if is_timing():
            conn.info["query_start_time"] = time.perf_counter()

    @event.listens_for(target, "after_cursor_execute")
    def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        start = conn.info.pop("query_start_time", None)
        if start is not None and is_timing():
            add_db_time((time.perf_counter() - start) * 1000)


def build_engine(database_url: str | None = None) -> Engine:
    url = database_url or settings.DATABASE_URL
    built = create_engine(url, echo=False, future=True, connect_args=_connect_args(url))
    _install_query_timing(built)
    return built


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, future=True)


engine = build_engine()
SessionLocal = build_session_factory(engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
