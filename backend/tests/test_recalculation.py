"""Tests for the daily recalculation orchestrator against the database."""

from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

import pytest

from castsales.core.locks import acquire_lock, recalculation_lock_key, release_lock
from castsales.models import (
    CastDailyItem,
    CastDailyStats,
    ExternalChannelOrder,
    RecalculationLock,
    SalesSettings,
    SystemSetting,
)
from castsales.services.sales.recalculation import (
    LOCK_HELD_ERROR,
    SCHEDULED_JOB_LOCK_KEY,
    recalculate_for_date,
    recalculate_range,
    run_scheduled_recalculation,
    set_finalized,
)
from castsales.services.sales.repository import (
    STATS_FIELDS,
    SalesDataError,
    SalesRepositoryBase,
    SqlAlchemySalesRepository,
)

ITEM_COLUMNS = (
    "store_id", "date", "order_id", "table_number", "guest_name", "cast_id", "help_cast_id",
    "product_name", "category", "quantity", "needs_cast", "subtotal", "self_sales", "help_sales",
    "self_back_rate", "self_back_amount", "help_back_rate", "help_back_amount", "is_self",
    "self_sales_item_based", "self_sales_receipt_based", "help_sales_item_based", "help_sales_receipt_based",
)


def _stats(db, cast_id=None):
    query = db.query(CastDailyStats)
    if cast_id is not None:
        return query.filter(CastDailyStats.cast_id == cast_id).first()
    return query.order_by(CastDailyStats.cast_id).all()


def _snapshot(db):
    stats = [
        tuple(getattr(row, name) for name in ("id", "cast_id", "date", "is_finalized") + STATS_FIELDS)
        for row in _stats(db)
    ]
    items = sorted((
        tuple(getattr(row, name) for name in ITEM_COLUMNS)
        for row in db.query(CastDailyItem).all()
    ), key=repr)
    return stats, items


@pytest.fixture
def repository(db_session):
    return SqlAlchemySalesRepository(db_session)


@pytest.fixture
def champagne_order(make_order):
    """Aoi nominated; Hana helps on the champagne; the table charge has no cast."""
    return make_order("Aoi", [("Champagne", 11000, ["Aoi", "Hana"]), ("Set", 5500, [])])


class TestRecalculateForDate:

    def test_writes_items_and_stats(self, db_session, repository, test_store, test_casts, champagne_order, business_date):
        aoi, hana, _ = test_casts
        result = recalculate_for_date(repository, test_store.id, business_date)

        assert result.success is True
        assert result.error is None
        assert result.casts_processed == 2
        assert result.items_processed == 3
        assert db_session.query(CastDailyItem).count() == 3

        aoi_stats = _stats(db_session, aoi.id)
        assert aoi_stats.self_sales_item_based == 10000
        assert aoi_stats.self_sales_receipt_based == 15000
        assert aoi_stats.total_sales_item_based == 10000
        assert aoi_stats.product_back_item_based == 10000
        assert aoi_stats.nomination_count == 1
        assert aoi_stats.is_finalized is False

        hana_stats = _stats(db_session, hana.id)
        assert hana_stats.help_sales_item_based == 0

    def test_result_dict(self, repository, test_store, test_casts, champagne_order, business_date):
        result = recalculate_for_date(repository, test_store.id, business_date).to_dict()
        assert result == {
            "success": True,
            "castsProcessed": 2,
            "itemsProcessed": 3,
            "error": None,
            "storeId": test_store.id,
            "date": "2026-10-01",
        }

    def test_rerun_is_idempotent(self, db_session, repository, test_store, test_casts, champagne_order, business_date):
        recalculate_for_date(repository, test_store.id, business_date)
        first = _snapshot(db_session)
        recalculate_for_date(repository, test_store.id, business_date)
        assert _snapshot(db_session) == first

    def test_store_settings_row_is_used(self, db_session, repository, test_store, test_casts, make_order, business_date):
        db_session.add(SalesSettings(
            store_id=test_store.id,
            item_exclude_consumption_tax=False,
            item_exclude_service_charge=True,
            item_help_distribution_method="equal",
            item_rounding_method="none",
        ))
        db_session.commit()
        make_order("Aoi", [("Champagne", 10000, ["Aoi", "Hana"])])

        recalculate_for_date(repository, test_store.id, business_date)

        assert _stats(db_session, test_casts[0].id).self_sales_item_based == 5000
        assert _stats(db_session, test_casts[1].id).help_sales_item_based == 5000

    def test_store_tax_rate(self, db_session, repository, test_store, test_casts, make_order, business_date):
        db_session.add(SystemSetting(store_id=test_store.id, setting_key="tax_rate", setting_value="8"))
        db_session.commit()
        make_order("Aoi", [("Wine", 10800, ["Aoi"])])

        recalculate_for_date(repository, test_store.id, business_date)

        assert _stats(db_session, test_casts[0].id).self_sales_item_based == 10000

    def test_other_days_and_deleted_orders_ignored(self, db_session, repository, test_store, test_casts, make_order, business_date):
        make_order("Aoi", [("Wine", 1100, ["Aoi"])], order_date=datetime(2026, 10, 2, 21, 0))
        deleted = make_order("Aoi", [("Wine", 1100, ["Aoi"])])
        deleted.deleted_at = datetime(2026, 10, 1, 23, 0)
        db_session.commit()

        result = recalculate_for_date(repository, test_store.id, business_date)

        assert result.success is True
        assert result.casts_processed == 0
        assert result.items_processed == 0

    def test_stale_rows_removed_when_orders_disappear(self, db_session, repository, test_store, test_casts, champagne_order, business_date):
        recalculate_for_date(repository, test_store.id, business_date)
        champagne_order.deleted_at = datetime(2026, 10, 2, 1, 0)
        db_session.commit()

        recalculate_for_date(repository, test_store.id, business_date)

        assert db_session.query(CastDailyStats).count() == 0
        assert db_session.query(CastDailyItem).count() == 0

    def test_service_flag_ignored_when_tax_excluded(self, db_session, repository, test_store, test_casts, champagne_order, business_date):
        db_session.add(SalesSettings(
            store_id=test_store.id,
            item_exclude_consumption_tax=True,
            item_exclude_service_charge=False,
            receipt_exclude_consumption_tax=True,
            receipt_exclude_service_charge=False,
        ))
        db_session.commit()

        result = recalculate_for_date(repository, test_store.id, business_date)

        assert result.success is True
        aoi_stats = _stats(db_session, test_casts[0].id)
        assert aoi_stats.self_sales_item_based == 10000
        assert aoi_stats.self_sales_receipt_based == 15000
        assert db_session.query(RecalculationLock).count() == 0


class TestFinalization:

    def test_finalized_cast_left_untouched(self, db_session, repository, test_store, test_casts, champagne_order, make_order, business_date):
        aoi, hana, _ = test_casts
        recalculate_for_date(repository, test_store.id, business_date)
        aoi_stats = _stats(db_session, aoi.id)
        aoi_stats.is_finalized = True
        db_session.commit()

        make_order("Aoi", [("Wine", 22000, ["Aoi"])])
        result = recalculate_for_date(repository, test_store.id, business_date)

        assert result.success is True
        assert result.casts_processed == 1
        assert result.items_processed == 0
        db_session.expire_all()
        assert _stats(db_session, aoi.id).self_sales_item_based == 10000
        assert db_session.query(CastDailyItem).count() == 3
        assert db_session.query(CastDailyItem).filter(CastDailyItem.product_name == "Wine").count() == 0
        assert _stats(db_session, hana.id) is not None

    def test_set_finalized_and_unfinalize(self, db_session, repository, test_store, test_casts, champagne_order, business_date):
        recalculate_for_date(repository, test_store.id, business_date)

        assert set_finalized(db_session, test_store.id, business_date, business_date) == 2
        rows = _stats(db_session)
        assert all(row.is_finalized for row in rows)
        assert all(row.finalized_at is not None for row in rows)

        assert set_finalized(db_session, test_store.id, business_date, business_date, finalized=False) == 2
        rows = _stats(db_session)
        assert not any(row.is_finalized for row in rows)
        assert all(row.finalized_at is None for row in rows)

    def test_set_finalized_outside_range(self, db_session, repository, test_store, test_casts, champagne_order, business_date):
        recalculate_for_date(repository, test_store.id, business_date)
        next_day = business_date + timedelta(days=1)
        assert set_finalized(db_session, test_store.id, next_day, next_day) == 0

    def test_set_finalized_rejects_reversed_range(self, db_session, business_date):
        with pytest.raises(ValueError):
            set_finalized(db_session, 1, business_date, business_date - timedelta(days=1))


class TestLocking:

    def test_held_lock_returns_failure(self, db_session, repository, test_store, test_casts, champagne_order, business_date):
        key = recalculation_lock_key(test_store.id, business_date)
        assert acquire_lock(db_session, key) is True

        result = recalculate_for_date(repository, test_store.id, business_date)

        assert result.success is False
        assert result.error == LOCK_HELD_ERROR
        assert db_session.query(CastDailyStats).count() == 0

        release_lock(db_session, key)
        assert recalculate_for_date(repository, test_store.id, business_date).success is True

    def test_lock_released_after_run(self, db_session, repository, test_store, test_casts, champagne_order, business_date):
        recalculate_for_date(repository, test_store.id, business_date)
        assert db_session.query(RecalculationLock).count() == 0

    def test_expired_lock_taken_over_is_not_released_by_old_holder(self, db_session, repository, test_store, business_date):
        key = recalculation_lock_key(test_store.id, business_date)
        assert repository.acquire_lock(key, ttl_seconds=-60) is True
        assert acquire_lock(db_session, key, owner="worker-2") is True

        repository.release_lock(key)

        assert db_session.query(RecalculationLock).one().locked_by == "worker-2"

    def test_read_failure_is_reported_and_lock_released(self, business_date):
        class FailingRepository(SalesRepositoryBase):
            def __init__(self, error: Exception):
                self.error = error
                self.released: List[str] = []
                self.saved = False

            def load_daily_inputs(self, store_id, business_date):
                raise self.error

            def save_daily_results(self, *args, **kwargs):
                self.saved = True

            def acquire_lock(self, lock_key: str, ttl_seconds: Optional[int] = None) -> bool:
                return True

            def release_lock(self, lock_key: str) -> None:
                self.released.append(lock_key)

        for error in (SalesDataError("settings unreadable"), RuntimeError("connection reset")):
            source = FailingRepository(error)
            result = recalculate_for_date(source, 1, business_date)
            assert result.success is False
            assert result.error == str(error)
            assert result.store_id == 1
            assert source.saved is False
            assert source.released == [recalculation_lock_key(1, business_date)]


class TestExternalSales:

    def test_external_sales_marked_processed(self, db_session, repository, test_store, test_casts, business_date):
        aoi = test_casts[0]
        sale = ExternalChannelOrder(
            store_id=test_store.id, business_date=business_date, cast_id=aoi.id,
            product_name="Gift", actual_price=3000, quantity=2,
        )
        unassigned = ExternalChannelOrder(
            store_id=test_store.id, business_date=business_date, cast_id=None,
            product_name="Gift", actual_price=1000, quantity=1,
        )
        db_session.add_all([sale, unassigned])
        db_session.commit()

        result = recalculate_for_date(repository, test_store.id, business_date)

        assert result.success is True
        db_session.refresh(sale)
        db_session.refresh(unassigned)
        assert sale.is_processed is True
        assert unassigned.is_processed is False
        assert _stats(db_session, aoi.id).self_sales_item_based == 6000

        recalculate_for_date(repository, test_store.id, business_date)
        assert _stats(db_session, aoi.id).self_sales_item_based == 6000
        assert db_session.query(CastDailyItem).filter(CastDailyItem.category == "external").count() == 1


class TestRange:

    def test_each_day_recalculated(self, repository, test_store, test_casts, champagne_order, business_date):
        results = recalculate_range(repository, test_store.id, business_date, business_date + timedelta(days=2))
        assert [r.business_date for r in results] == [
            business_date,
            business_date + timedelta(days=1),
            business_date + timedelta(days=2),
        ]
        assert all(r.success for r in results)
        assert results[0].casts_processed == 2
        assert results[1].casts_processed == 0

    def test_reversed_range_rejected(self, repository, business_date):
        with pytest.raises(ValueError):
            recalculate_range(repository, 1, business_date, business_date - timedelta(days=1))


class TestScheduledRecalculation:

    # 00:00 on 2026-10-02 in Tokyo, before the 06:00 cutoff
    NOW = datetime(2026, 10, 1, 15, 0, tzinfo=timezone.utc)

    def test_current_business_day(self, db_session, test_store, test_casts, champagne_order):
        results = run_scheduled_recalculation(db_session, now=self.NOW)
        assert len(results) == 1
        assert results[0]["storeId"] == test_store.id
        assert results[0]["date"] == "2026-10-01"
        assert results[0]["success"] is True
        assert results[0]["castsProcessed"] == 2
        assert db_session.query(RecalculationLock).count() == 0

    def test_days_with_unprocessed_external_sales(self, db_session, test_store, test_casts):
        db_session.add(ExternalChannelOrder(
            store_id=test_store.id, business_date=date(2026, 9, 28), cast_id=test_casts[0].id,
            product_name="Gift", actual_price=1000, quantity=1,
        ))
        db_session.commit()

        results = run_scheduled_recalculation(db_session, now=self.NOW)

        assert [r["date"] for r in results] == ["2026-09-28", "2026-10-01"]
        assert db_session.query(ExternalChannelOrder).filter(ExternalChannelOrder.is_processed == False).count() == 0

    def test_store_cutoff_hour(self, db_session, test_store, test_casts):
        db_session.add(SystemSetting(store_id=test_store.id, setting_key="business_day_start_hour", setting_value="0"))
        db_session.commit()
        results = run_scheduled_recalculation(db_session, now=self.NOW)
        assert [r["date"] for r in results] == ["2026-10-02"]

    def test_inactive_store_skipped(self, db_session, test_store):
        test_store.is_active = False
        db_session.commit()
        assert run_scheduled_recalculation(db_session, now=self.NOW) == []

    def test_overlapping_run_skipped(self, db_session, test_store, test_casts):
        assert acquire_lock(db_session, SCHEDULED_JOB_LOCK_KEY) is True
        assert run_scheduled_recalculation(db_session, now=self.NOW) == []
        assert db_session.query(CastDailyStats).count() == 0
