import importlib
import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from tests.db_utils import run_migrations, throwaway_postgres_database

# Read once: each test points DATABASE_URL at its own database.
CONFIGURED_DATABASE_URL = os.getenv("DATABASE_URL", "")


def _setup_app(database_url: str):
    os.environ["DATABASE_URL"] = database_url
    os.environ["SECRET_KEY"] = "test-secret"

    import app.millstock.core.config as config
    import app.millstock.db.session as session
    import app.main as main

    importlib.reload(config)
    importlib.reload(session)
    importlib.reload(main)

    return main.create_app(), session


@pytest.fixture()
def database_url(tmp_path: Path):
    if CONFIGURED_DATABASE_URL.startswith("postgres"):
        with throwaway_postgres_database(CONFIGURED_DATABASE_URL) as url:
            yield url
    else:
        yield f"sqlite+pysqlite:///{tmp_path / 'test.db'}"


@pytest.fixture()
def app_session(database_url: str):
    run_migrations(database_url)
    app, session = _setup_app(database_url)

    yield app, session

    session.engine.dispose()


@pytest.fixture()
def client(app_session):
    app, _session = app_session
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def db_session(app_session):
    _app, session = app_session
    db = session.SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def session_factory(app_session):
    _app, session = app_session
    return session.SessionLocal
