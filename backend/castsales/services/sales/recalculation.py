"""
Daily recalculation orchestrator.

``recalculate_for_date`` is the single entry point used by both the HTTP
route and the scheduled job. It never raises: every failure comes back as
a ``RecalculationResult`` with ``success=False``.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from castsales.core.locks import recalculation_lock, recalculation_lock_key
from castsales.services.sales.aggregation import SalesAggregator
from castsales.services.sales.back_rates import BackRateTable
from castsales.services.sales.business_day import current_business_day
from castsales.services.sales.repository import SalesRepositoryBase, SqlAlchemySalesRepository
from castsales.services.sales.stats import build_daily_stats
from castsales.services.sales.types import DailyInputs, DailyItemRow, DailyStatsRow
from castsales.services.sales.wages import help_back_methods

logger = logging.getLogger(__name__)

LOCK_HELD_ERROR = "recalculation already in progress"
SCHEDULED_JOB_LOCK_KEY = "recalculate:scheduled"


@dataclass
class RecalculationResult:
    success: bool
    casts_processed: int = 0
    items_processed: int = 0
    error: Optional[str] = None
    store_id: Optional[int] = None
    business_date: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "castsProcessed": self.casts_processed,
            "itemsProcessed": self.items_processed,
            "error": self.error,
            "storeId": self.store_id,
            "date": self.business_date.isoformat() if self.business_date else None,
        }


@dataclass
class DailyComputation:
    """Rows to persist for one (store, date); finalized casts already removed."""
    items: List[DailyItemRow] = field(default_factory=list)
    stats: List[DailyStatsRow] = field(default_factory=list)
    external_sale_ids: List[int] = field(default_factory=list)


def compute_daily_results(inputs: DailyInputs) -> DailyComputation:
    """Pure part of the recalculation: inputs in, rows out."""
    aggregator = SalesAggregator(
        store_id=inputs.store_id,
        business_date=inputs.business_date,
        settings=inputs.settings,
        rates=inputs.rates,
        casts=inputs.casts,
        product_needs_cast=inputs.product_needs_cast,
        help_back_methods=help_back_methods(inputs.wages.compensations, inputs.business_date),
    )
    for order in inputs.orders:
        aggregator.add_order(order)
    for sale in inputs.external_sales:
        aggregator.add_external_sale(sale)
    aggregation = aggregator.finish(BackRateTable(inputs.back_rates))

    finalized = set(inputs.finalized_cast_ids)
    return DailyComputation(
        items=[row for row in aggregation.rows if row.cast_id not in finalized],
        stats=build_daily_stats(inputs, aggregation),
        external_sale_ids=[
            sale.id for sale in inputs.external_sales
            if not sale.is_processed and sale.cast_id not in finalized
        ],
    )


def recalculate_for_date(
    source: SalesRepositoryBase,
    store_id: int,
    business_date: date,
    lock_ttl_seconds: Optional[int] = None,
) -> RecalculationResult:
    """Recompute and persist one store's business day.

    Args:
        source: Data source and sink, owned by the caller.
        store_id: Store to recalculate.
        business_date: Business day to recalculate.
        lock_ttl_seconds: Lifetime of the per-(store, date) lock.

    Returns:
        RecalculationResult; ``success`` is False on any failure, including
        when another recalculation of the same day holds the lock.
    """
    lock_key = recalculation_lock_key(store_id, business_date)
    try:
        acquired = source.acquire_lock(lock_key, ttl_seconds=lock_ttl_seconds)
    except Exception as e:
        logger.error(f"Could not acquire lock {lock_key}: {e}")
        return RecalculationResult(success=False, error=str(e), store_id=store_id, business_date=business_date)
    if not acquired:
        logger.warning(f"Recalculation for store {store_id} on {business_date} skipped: lock held")
        return RecalculationResult(success=False, error=LOCK_HELD_ERROR, store_id=store_id, business_date=business_date)

    try:
        inputs = source.load_daily_inputs(store_id, business_date)
        computation = compute_daily_results(inputs)
        source.save_daily_results(
            store_id,
            business_date,
            stats=computation.stats,
            items=computation.items,
            finalized_cast_ids=inputs.finalized_cast_ids,
            processed_external_ids=computation.external_sale_ids,
        )
    except Exception as e:
        logger.error(f"Recalculation failed for store {store_id} on {business_date}: {e}", exc_info=True)
        return RecalculationResult(success=False, error=str(e), store_id=store_id, business_date=business_date)
    finally:
        try:
            source.release_lock(lock_key)
        except Exception as e:
            logger.error(f"Could not release lock {lock_key}: {e}")

    logger.info(
        f"Recalculated store {store_id} on {business_date}: "
        f"{len(computation.stats)} casts, {len(computation.items)} items"
    )
    return RecalculationResult(
        success=True,
        casts_processed=len(computation.stats),
        items_processed=len(computation.items),
        store_id=store_id,
        business_date=business_date,
    )


def recalculate_range(
    source: SalesRepositoryBase,
    store_id: int,
    date_from: date,
    date_to: date,
) -> List[RecalculationResult]:
    """Recalculate every day from ``date_from`` to ``date_to`` inclusive."""
    if date_from > date_to:
        raise ValueError("date_from must be on or before date_to")
    results = []
    current = date_from
    while current <= date_to:
        results.append(recalculate_for_date(source, store_id, current))
        current += timedelta(days=1)
    return results


def set_finalized(
    db: Session,
    store_id: int,
    date_from: date,
    date_to: date,
    finalized: bool = True,
) -> int:
    """Finalize (or unlock) every stats row of a store in a date range."""
    if date_from > date_to:
        raise ValueError("date_from must be on or before date_to")
    count = SqlAlchemySalesRepository(db).set_finalized(store_id, date_from, date_to, finalized)
    action = "finalized" if finalized else "unfinalized"
    logger.info(f"Store {store_id}: {action} {count} stats rows from {date_from} to {date_to}")
    return count


def run_scheduled_recalculation(db: Session, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Recalculate the current business day of every active store.

    Days that still have unprocessed external-channel sales are
    recalculated too. Overlapping runs are skipped through a global lock.
    """
    repository = SqlAlchemySalesRepository(db)
    with recalculation_lock(db, SCHEDULED_JOB_LOCK_KEY) as acquired:
        if not acquired:
            logger.info("Scheduled recalculation already running, skipping")
            return []

        results: List[Dict[str, Any]] = []
        for store_id in repository.list_active_store_ids():
            cutoff = repository.get_business_day_cutoff(store_id)
            days = {current_business_day(cutoff_hour=cutoff, now=now)}
            days.update(repository.get_unprocessed_external_dates(store_id))
            for day in sorted(days):
                results.append(recalculate_for_date(repository, store_id, day).to_dict())

    failed = sum(1 for r in results if not r["success"])
    logger.info(f"Scheduled recalculation finished: {len(results)} runs, {failed} failed")
    return results
