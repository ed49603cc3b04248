import pytest
from sqlalchemy import update

from app.millstock.core.error_catalog import InsufficientStockError, NegativeStockInvariantError, PersistenceError
from app.millstock.core.metrics import metrics
from app.millstock.db.enums import StockBucket
from app.millstock.db.models import StockRecord
from app.millstock.services.ledger import StockLedger, bucket_value, is_low_stock
from tests.ledger_helpers import counters, create_material, create_stock, create_warehouse, stock_of


@pytest.fixture()
def setup(db_session):
    warehouse = create_warehouse(db_session, "LED")
    material = create_material(db_session)
    return warehouse, material


def test_get_or_create_is_idempotent(db_session, setup):
    warehouse, material = setup
    ledger = StockLedger(db_session)

    first = ledger.get_or_create(warehouse.id, material.id, "1in")
    second = ledger.get_or_create(str(warehouse.id), str(material.id), "1in")
    db_session.commit()

    assert first.id == second.id
    assert db_session.query(StockRecord).count() == 1
    assert counters(first) == {
        "not_dried": 0,
        "under_drying": 0,
        "dried": 0,
        "damaged": 0,
        "in_transit_out": 0,
        "in_transit_in": 0,
    }


def test_withdraw_decrements_bucket(db_session, setup):
    warehouse, material = setup
    record = create_stock(db_session, warehouse, material, dried=12)

    updated = StockLedger(db_session).withdraw(record, StockBucket.DRIED, 5)
    db_session.commit()

    assert updated.dried == 7
    assert stock_of(db_session, warehouse, material).dried == 7


def test_withdraw_more_than_available_raises(db_session, setup):
    warehouse, material = setup
    record = create_stock(db_session, warehouse, material, not_dried=3)

    with pytest.raises(InsufficientStockError) as excinfo:
        StockLedger(db_session).withdraw(record, StockBucket.NOT_DRIED, 4)
    db_session.rollback()

    assert excinfo.value.details["available"] == 3
    assert excinfo.value.details["requested"] == 4
    assert excinfo.value.details["bucket"] == "NOT_DRIED"
    assert stock_of(db_session, warehouse, material).not_dried == 3


def test_adjust_bucket_below_zero_raises(db_session, setup):
    warehouse, material = setup
    record = create_stock(db_session, warehouse, material, in_transit_out=2)
    ledger = StockLedger(db_session)

    with pytest.raises(NegativeStockInvariantError) as excinfo:
        ledger.adjust_bucket(record, StockBucket.IN_TRANSIT_OUT, -3)
    db_session.rollback()

    assert excinfo.value.details["bucket"] == "IN_TRANSIT_OUT"
    assert excinfo.value.details["available"] == 2


def test_withdraw_from_in_transit_bucket_is_an_invariant_breach(db_session, setup):
    warehouse, material = setup
    record = create_stock(db_session, warehouse, material, in_transit_in=1)

    with pytest.raises(NegativeStockInvariantError):
        StockLedger(db_session).withdraw(record, StockBucket.IN_TRANSIT_IN, 2)
    db_session.rollback()


def test_adjust_bucket_zero_delta_is_noop(db_session, setup):
    warehouse, material = setup
    record = create_stock(db_session, warehouse, material, damaged=1)

    assert StockLedger(db_session).adjust_bucket(record, StockBucket.DAMAGED, 0) is record


def test_set_bucket_returns_before_and_after(db_session, setup):
    warehouse, material = setup
    record = create_stock(db_session, warehouse, material, under_drying=9)
    ledger = StockLedger(db_session)

    assert ledger.set_bucket(record, StockBucket.UNDER_DRYING, 4) == (9, 4)
    db_session.commit()
    assert stock_of(db_session, warehouse, material).under_drying == 4

    with pytest.raises(NegativeStockInvariantError):
        ledger.set_bucket(record, StockBucket.UNDER_DRYING, -1)


def test_low_stock_and_bucket_value():
    record = StockRecord(thickness="2in", not_dried=3, dried=4, damaged=50, minimum_stock_level=8)

    assert is_low_stock(record) is True
    assert bucket_value(record, StockBucket.DAMAGED) == 50

    record.minimum_stock_level = 7
    assert is_low_stock(record) is False

    record.minimum_stock_level = None
    assert is_low_stock(record) is False


def _recount_after_each_read(db_session, ledger, record, *, times: int) -> None:
    """Bump ``dried`` behind the ledger's back right after it reads the record."""
    read = ledger.repo.get_fresh
    remaining = [times]

    def get_fresh(record_id):
        fresh = read(record_id)
        if remaining[0]:
            remaining[0] -= 1
            db_session.execute(
                update(StockRecord)
                .where(StockRecord.id == record.id)
                .values(dried=StockRecord.dried + 1)
                .execution_options(synchronize_session=False)
            )
        return fresh

    ledger.repo.get_fresh = get_fresh


def test_set_bucket_retries_when_counter_changes_underneath(db_session, setup):
    warehouse, material = setup
    record = create_stock(db_session, warehouse, material, dried=10)
    ledger = StockLedger(db_session)
    metrics.reset()
    _recount_after_each_read(db_session, ledger, record, times=1)

    assert ledger.set_bucket(record, StockBucket.DRIED, 3) == (11, 3)
    db_session.commit()

    assert stock_of(db_session, warehouse, material).dried == 3
    assert metrics.sample("ledger_conflicts_total") == (1.0 if metrics.enabled else 0.0)


def test_set_bucket_gives_up_as_lock_timeout(db_session, setup):
    warehouse, material = setup
    record = create_stock(db_session, warehouse, material, dried=10)
    ledger = StockLedger(db_session)
    metrics.reset()
    _recount_after_each_read(db_session, ledger, record, times=100)

    with pytest.raises(PersistenceError) as excinfo:
        ledger.set_bucket(record, StockBucket.DRIED, 3)
    db_session.rollback()

    assert excinfo.value.error.code == "LOCK_TIMEOUT"
    assert excinfo.value.details["bucket"] == "DRIED"
    assert excinfo.value.details["attempts"] == 5
    assert stock_of(db_session, warehouse, material).dried == 10
    assert metrics.sample("lock_wait_timeout_total") == (1.0 if metrics.enabled else 0.0)
