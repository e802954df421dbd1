"""Data access for the daily recalculation.

``SalesRepositoryBase`` is the boundary the orchestrator depends on: one
call loads every input for a (store, date) as plain records, one call
writes the results. ``SqlAlchemySalesRepository`` implements it on top of
a caller-owned SQLAlchemy session.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set
import logging

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from castsales.core.config import settings
from castsales.core.locks import acquire_lock, new_lock_owner, release_lock
from castsales.models import (
    Attendance,
    Cast,
    CastBackRate,
    CastDailyItem,
    CastDailyStats,
    CompensationSetting,
    Costume,
    ExternalChannelOrder,
    Order,
    Product,
    SalesSettings,
    SpecialWageDay,
    Store,
    SystemSetting,
    WageStatus,
)
from castsales.services.sales.policy import SalesSettingsData, default_sales_settings
from castsales.services.sales.types import (
    AttendanceRecord,
    BackRateRecord,
    CastRecord,
    CompensationRecord,
    DailyInputs,
    DailyItemRow,
    DailyStatsRow,
    ExternalSaleRecord,
    OrderItemRecord,
    OrderRecord,
    StoreRates,
    WageTables,
)

logger = logging.getLogger(__name__)

TAX_RATE_KEY = "tax_rate"
SERVICE_FEE_RATE_KEY = "service_fee_rate"
BUSINESS_DAY_START_KEY = "business_day_start_hour"

STATS_FIELDS = (
    "self_sales_item_based",
    "help_sales_item_based",
    "total_sales_item_based",
    "product_back_item_based",
    "self_sales_receipt_based",
    "help_sales_receipt_based",
    "total_sales_receipt_based",
    "product_back_receipt_based",
    "work_hours",
    "base_hourly_wage",
    "special_day_bonus",
    "costume_bonus",
    "total_hourly_wage",
    "wage_amount",
    "costume_id",
    "wage_status_id",
    "nomination_count",
)


class SalesDataError(Exception):
    """Inputs for a recalculation could not be read."""


class SalesPersistenceError(Exception):
    """Recalculation results could not be written."""


class SalesRepositoryBase(ABC):
    """Abstract data source and sink for the daily recalculation."""

    @abstractmethod
    def load_daily_inputs(self, store_id: int, business_date: date) -> DailyInputs:
        """Read every input for one store and business day."""
        pass

    @abstractmethod
    def save_daily_results(
        self,
        store_id: int,
        business_date: date,
        stats: List[DailyStatsRow],
        items: List[DailyItemRow],
        finalized_cast_ids: Set[int],
        processed_external_ids: List[int],
    ) -> None:
        """Replace the day's results for every non-finalized cast, atomically."""
        pass

    @abstractmethod
    def acquire_lock(self, lock_key: str, ttl_seconds: Optional[int] = None) -> bool:
        pass

    @abstractmethod
    def release_lock(self, lock_key: str) -> None:
        pass


class SqlAlchemySalesRepository(SalesRepositoryBase):
    """Repository over the application database."""

    def __init__(self, db_session: Session):
        self.db = db_session
        self._lock_owners: Dict[str, str] = {}

    # ============== Store configuration ==============

    def _system_settings(self, store_id: int) -> Dict[str, str]:
        rows = self.db.query(SystemSetting).filter(SystemSetting.store_id == store_id).all()
        return {row.setting_key: row.setting_value for row in rows if row.setting_value is not None}

    def get_store_rates(self, store_id: int) -> StoreRates:
        """Tax and service-fee rates, stored as percents, returned as fractions."""
        values = self._system_settings(store_id)
        try:
            tax_percent = float(values.get(TAX_RATE_KEY, settings.default_tax_rate))
            service_percent = float(values.get(SERVICE_FEE_RATE_KEY, settings.default_service_fee_rate))
        except ValueError as e:
            raise SalesDataError(f"Malformed tax configuration for store {store_id}: {e}") from e
        return StoreRates(tax_rate=tax_percent / 100, service_rate=service_percent / 100)

    def get_business_day_cutoff(self, store_id: int) -> int:
        value = self._system_settings(store_id).get(BUSINESS_DAY_START_KEY)
        if value is None:
            return settings.business_day_cutoff_hour
        try:
            hour = int(value)
        except ValueError:
            logger.warning(f"Invalid {BUSINESS_DAY_START_KEY} '{value}' for store {store_id}, using default")
            return settings.business_day_cutoff_hour
        return hour if 0 <= hour <= 23 else settings.business_day_cutoff_hour

    def get_sales_settings(self, store_id: int) -> SalesSettingsData:
        row = self.db.query(SalesSettings).filter(SalesSettings.store_id == store_id).first()
        if row is None:
            logger.warning(f"No sales settings for store {store_id}, using defaults")
            return default_sales_settings(store_id)
        return SalesSettingsData.from_model(row)

    def list_active_store_ids(self) -> List[int]:
        return [s.id for s in self.db.query(Store).filter(Store.is_active == True).order_by(Store.id).all()]

    # ============== Inputs ==============

    def get_orders(self, store_id: int, business_date: date) -> List[OrderRecord]:
        start = datetime.combine(business_date, time.min)
        end = start + timedelta(days=1)
        orders = (
            self.db.query(Order)
            .options(selectinload(Order.items))
            .filter(
                Order.store_id == store_id,
                Order.order_date >= start,
                Order.order_date < end,
                Order.deleted_at.is_(None),
            )
            .order_by(Order.order_date, Order.id)
            .all()
        )
        return [
            OrderRecord(
                id=o.id,
                staff_name=o.staff_name,
                order_date=o.order_date,
                table_number=o.table_number,
                guest_name=o.guest_name,
                guest_count=o.guest_count,
                checkout_datetime=o.checkout_datetime,
                total_incl_tax=o.total_incl_tax,
                items=[
                    OrderItemRecord(
                        id=item.id,
                        product_name=item.product_name,
                        category=item.category,
                        cast_names=list(item.cast_names or []),
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        subtotal=item.subtotal,
                    )
                    for item in o.items
                ],
            )
            for o in orders
        ]

    def get_casts(self, store_id: int) -> List[CastRecord]:
        casts = self.db.query(Cast).filter(Cast.store_id == store_id).order_by(Cast.id).all()
        return [CastRecord(id=c.id, name=c.name) for c in casts]

    def get_product_needs_cast(self, store_id: int) -> Dict[str, bool]:
        products = self.db.query(Product).filter(Product.store_id == store_id).all()
        return {p.name: p.needs_cast is not False for p in products}

    def get_back_rates(self, store_id: int) -> List[BackRateRecord]:
        rates = (
            self.db.query(CastBackRate)
            .filter(CastBackRate.store_id == store_id, CastBackRate.is_active == True)
            .order_by(CastBackRate.id)
            .all()
        )
        return [
            BackRateRecord(
                cast_id=r.cast_id,
                product_name=r.product_name,
                category=r.category,
                self_back_ratio=Decimal(str(r.self_back_ratio or 0)),
                help_back_ratio=Decimal(str(r.help_back_ratio)) if r.help_back_ratio is not None else None,
            )
            for r in rates
        ]

    def get_attendance(self, store_id: int, business_date: date) -> List[AttendanceRecord]:
        rows = (
            self.db.query(Attendance)
            .filter(Attendance.store_id == store_id, Attendance.date == business_date)
            .order_by(Attendance.id)
            .all()
        )
        return [
            AttendanceRecord(
                cast_name=a.cast_name,
                check_in=a.check_in_datetime,
                check_out=a.check_out_datetime,
                costume_id=a.costume_id,
            )
            for a in rows
        ]

    def get_wage_tables(self, store_id: int, business_date: date) -> WageTables:
        statuses = self.db.query(WageStatus).filter(WageStatus.store_id == store_id).all()
        costumes = self.db.query(Costume).filter(Costume.store_id == store_id).all()
        special_day = (
            self.db.query(SpecialWageDay)
            .filter(
                SpecialWageDay.store_id == store_id,
                SpecialWageDay.date == business_date,
                SpecialWageDay.is_active == True,
            )
            .first()
        )
        compensations = (
            self.db.query(CompensationSetting)
            .filter(CompensationSetting.store_id == store_id, CompensationSetting.is_active == True)
            .order_by(CompensationSetting.id)
            .all()
        )
        return WageTables(
            wage_statuses={s.id: s.hourly_wage for s in statuses},
            costume_bonuses={c.id: c.wage_adjustment for c in costumes},
            special_day_bonus=special_day.wage_adjustment if special_day else 0,
            compensations=[
                CompensationRecord(
                    cast_id=c.cast_id,
                    status_id=c.status_id,
                    hourly_wage_override=c.hourly_wage_override,
                    target_year=c.target_year,
                    target_month=c.target_month,
                    help_back_calculation_method=c.help_back_calculation_method,
                )
                for c in compensations
            ],
        )

    def get_external_sales(self, store_id: int, business_date: date) -> List[ExternalSaleRecord]:
        rows = (
            self.db.query(ExternalChannelOrder)
            .filter(
                ExternalChannelOrder.store_id == store_id,
                ExternalChannelOrder.business_date == business_date,
                ExternalChannelOrder.cast_id.isnot(None),
            )
            .order_by(ExternalChannelOrder.id)
            .all()
        )
        return [
            ExternalSaleRecord(
                id=r.id,
                cast_id=r.cast_id,
                product_name=r.product_name or "",
                actual_price=r.actual_price or 0,
                quantity=r.quantity or 0,
                is_processed=r.is_processed,
            )
            for r in rows
        ]

    def get_unprocessed_external_dates(self, store_id: int) -> List[date]:
        rows = (
            self.db.query(ExternalChannelOrder.business_date)
            .filter(ExternalChannelOrder.store_id == store_id, ExternalChannelOrder.is_processed == False)
            .distinct()
            .order_by(ExternalChannelOrder.business_date)
            .all()
        )
        return [r[0] for r in rows]

    def get_finalized_cast_ids(self, store_id: int, business_date: date) -> Set[int]:
        rows = (
            self.db.query(CastDailyStats.cast_id)
            .filter(
                CastDailyStats.store_id == store_id,
                CastDailyStats.date == business_date,
                CastDailyStats.is_finalized == True,
            )
            .all()
        )
        return {r[0] for r in rows}

    def load_daily_inputs(self, store_id: int, business_date: date) -> DailyInputs:
        try:
            return DailyInputs(
                store_id=store_id,
                business_date=business_date,
                settings=self.get_sales_settings(store_id),
                rates=self.get_store_rates(store_id),
                orders=self.get_orders(store_id, business_date),
                casts=self.get_casts(store_id),
                product_needs_cast=self.get_product_needs_cast(store_id),
                back_rates=self.get_back_rates(store_id),
                attendance=self.get_attendance(store_id, business_date),
                wages=self.get_wage_tables(store_id, business_date),
                external_sales=self.get_external_sales(store_id, business_date),
                finalized_cast_ids=self.get_finalized_cast_ids(store_id, business_date),
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise SalesDataError(f"Failed to load sales data for store {store_id} on {business_date}: {e}") from e

    # ============== Results ==============

    def _upsert_stats(self, store_id: int, business_date: date, stats: Iterable[DailyStatsRow]) -> None:
        existing = {
            row.cast_id: row
            for row in self.db.query(CastDailyStats).filter(
                CastDailyStats.store_id == store_id,
                CastDailyStats.date == business_date,
            ).all()
        }
        for computed in stats:
            row = existing.get(computed.cast_id)
            if row is None:
                row = CastDailyStats(cast_id=computed.cast_id, store_id=store_id, date=business_date)
                self.db.add(row)
            elif row.is_finalized:
                continue
            for name in STATS_FIELDS:
                value = getattr(computed, name)
                # Only touch changed columns so a no-op recompute leaves rows untouched.
                if getattr(row, name) != value:
                    setattr(row, name, value)

    def save_daily_results(
        self,
        store_id: int,
        business_date: date,
        stats: List[DailyStatsRow],
        items: List[DailyItemRow],
        finalized_cast_ids: Set[int],
        processed_external_ids: List[int],
    ) -> None:
        computed_ids = {s.cast_id for s in stats}
        try:
            # A cast finalized since the inputs were loaded stays frozen.
            finalized = set(finalized_cast_ids) | self.get_finalized_cast_ids(store_id, business_date)
            self._upsert_stats(store_id, business_date, (s for s in stats if s.cast_id not in finalized))
            self.db.flush()

            stale = delete(CastDailyStats).where(
                CastDailyStats.store_id == store_id,
                CastDailyStats.date == business_date,
                CastDailyStats.is_finalized == False,
            )
            if computed_ids:
                stale = stale.where(CastDailyStats.cast_id.notin_(computed_ids))
            self.db.execute(stale)

            clear_items = delete(CastDailyItem).where(
                CastDailyItem.store_id == store_id,
                CastDailyItem.date == business_date,
            )
            if finalized:
                clear_items = clear_items.where(CastDailyItem.cast_id.notin_(finalized))
            self.db.execute(clear_items)

            self.db.add_all([
                CastDailyItem(
                    store_id=row.store_id,
                    date=row.date,
                    order_id=row.order_id,
                    table_number=row.table_number,
                    guest_name=row.guest_name,
                    cast_id=row.cast_id,
                    help_cast_id=row.help_cast_id,
                    product_name=row.product_name,
                    category=row.category,
                    quantity=row.quantity,
                    needs_cast=row.needs_cast,
                    subtotal=row.subtotal,
                    self_sales=row.self_sales,
                    help_sales=row.help_sales,
                    self_back_rate=row.self_back_rate,
                    self_back_amount=row.self_back_amount,
                    help_back_rate=row.help_back_rate,
                    help_back_amount=row.help_back_amount,
                    is_self=row.is_self,
                    self_sales_item_based=row.self_sales_item_based,
                    self_sales_receipt_based=row.self_sales_receipt_based,
                    help_sales_item_based=row.help_sales_item_based,
                    help_sales_receipt_based=row.help_sales_receipt_based,
                )
                for row in items
                if row.cast_id not in finalized
            ])

            if processed_external_ids:
                self.db.execute(
                    update(ExternalChannelOrder)
                    .where(ExternalChannelOrder.id.in_(processed_external_ids))
                    .values(is_processed=True)
                )

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise SalesPersistenceError(
                f"Failed to save results for store {store_id} on {business_date}: {e}"
            ) from e

    # ============== Finalization ==============

    def set_finalized(self, store_id: int, date_from: date, date_to: date, finalized: bool = True) -> int:
        """Lock or unlock stats rows in a date range; returns the number of rows changed."""
        try:
            result = self.db.execute(
                update(CastDailyStats)
                .where(
                    CastDailyStats.store_id == store_id,
                    CastDailyStats.date >= date_from,
                    CastDailyStats.date <= date_to,
                )
                .values(
                    is_finalized=finalized,
                    finalized_at=datetime.now(timezone.utc) if finalized else None,
                )
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise SalesPersistenceError(f"Failed to update finalization for store {store_id}: {e}") from e
        return result.rowcount or 0

    # ============== Locks ==============

    def acquire_lock(self, lock_key: str, ttl_seconds: Optional[int] = None) -> bool:
        owner = new_lock_owner()
        acquired = acquire_lock(self.db, lock_key, ttl_seconds=ttl_seconds, owner=owner)
        if acquired:
            self._lock_owners[lock_key] = owner
        return acquired

    def release_lock(self, lock_key: str) -> None:
        owner = self._lock_owners.pop(lock_key, None)
        if owner is not None:
            release_lock(self.db, lock_key, owner=owner)
