import uuid
from pathlib import Path

import pytest
from sqlalchemy import create_engine, func, inspect, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.millstock.db.models import MaterialType, User
from app.millstock.db.seed import run_seed
from tests.db_utils import run_migrations


def test_migrations_apply(tmp_path: Path):
    database_url = f"sqlite+pysqlite:///{tmp_path / 'migrations.db'}"
    run_migrations(database_url)

    engine = create_engine(database_url, future=True)
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())

    assert {
        "users",
        "warehouses",
        "user_warehouses",
        "material_types",
        "stock_records",
        "stock_adjustments",
        "stock_movements",
        "transfers",
        "transfer_items",
        "transfer_history",
        "transfer_sequences",
        "idempotency_records",
        "audit_events",
    } <= tables

    unique = {constraint["name"] for constraint in inspector.get_unique_constraints("stock_records")}
    assert "uq_stock_record_key" in unique
    indexes = [index["name"] for index in inspector.get_indexes("transfers")]
    assert indexes.count("ix_transfers_status_from") == 1
    engine.dispose()


def test_stock_counters_cannot_go_negative(tmp_path: Path):
    database_url = f"sqlite+pysqlite:///{tmp_path / 'checks.db'}"
    run_migrations(database_url)
    engine = create_engine(database_url, future=True)
    warehouse_id, material_id = str(uuid.uuid4()), str(uuid.uuid4())

    with engine.begin() as conn:
        conn.execute(
            text("INSERT INTO warehouses (id, code, name, created_at) VALUES (:id, 'A', 'A', CURRENT_TIMESTAMP)"),
            {"id": warehouse_id},
        )
        conn.execute(
            text("INSERT INTO material_types (id, name, created_at) VALUES (:id, 'Teak', CURRENT_TIMESTAMP)"),
            {"id": material_id},
        )

    with pytest.raises(IntegrityError):
        with engine.begin() as conn:
            conn.execute(
                text(
                    "INSERT INTO stock_records (id, warehouse_id, material_type_id, thickness, dried, created_at, updated_at) "
                    "VALUES (:id, :warehouse_id, :material_id, '2in', -1, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
                ),
                {"id": str(uuid.uuid4()), "warehouse_id": warehouse_id, "material_id": material_id},
            )
    engine.dispose()


def test_seed_is_idempotent(tmp_path: Path):
    database_url = f"sqlite+pysqlite:///{tmp_path / 'seed.db'}"
    run_migrations(database_url)

    engine = create_engine(database_url, future=True)
    SessionLocal = sessionmaker(bind=engine, future=True)

    with SessionLocal() as db:
        run_seed(db)
        users_count = db.scalar(select(func.count()).select_from(User))
        run_seed(db)
        users_count_after = db.scalar(select(func.count()).select_from(User))
        admin = db.execute(select(User)).scalars().one()

    assert users_count == users_count_after == 1
    assert admin.role == "ADMIN"
    engine.dispose()


def test_seed_adds_missing_material_types(tmp_path: Path):
    database_url = f"sqlite+pysqlite:///{tmp_path / 'seed-materials.db'}"
    run_migrations(database_url)

    engine = create_engine(database_url, future=True)
    SessionLocal = sessionmaker(bind=engine, future=True)

    with SessionLocal() as db:
        run_seed(db, material_types=["Teak", " Pine ", ""])
        run_seed(db, material_types=["Teak", "Mahogany"])
        names = db.execute(select(MaterialType.name).order_by(MaterialType.name)).scalars().all()

    assert names == ["Mahogany", "Pine", "Teak"]
    engine.dispose()
