"""Sales distribution settings, commission rates and computed daily results."""

from __future__ import annotations
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean, String, Integer, Date, DateTime, ForeignKey, JSON, Numeric, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from castsales.db.base import Base, TimestampMixin
from castsales.models.validators import non_negative, percentage, validate_list, one_of


class HelpDistributionMethod(str, Enum):
    """How an item's amount is split between nominated (SELF) and assisting (HELP) casts."""
    ALL_TO_NOMINATION = "all_to_nomination"
    EQUAL = "equal"
    RATIO = "ratio"
    EQUAL_PER_PERSON = "equal_per_person"


class MultiCastDistribution(str, Enum):
    """Whether HELP lines take part in the split at all."""
    NOMINATION_ONLY = "nomination_only"
    ALL_EQUAL = "all_equal"


class HelpSalesInclusion(str, Enum):
    """Whether HELP casts actually receive recorded sales."""
    SELF_ONLY = "self_only"
    BOTH = "both"


class RoundingType(str, Enum):
    FLOOR = "floor"
    CEIL = "ceil"
    ROUND = "round"
    NONE = "none"


class RoundingTiming(str, Enum):
    PER_ITEM = "per_item"
    TOTAL = "total"


class PublishedAggregation(str, Enum):
    """Which view is the official public figure."""
    ITEM_BASED = "item_based"
    RECEIPT_BASED = "receipt_based"
    NONE = "none"


class HelpBackCalculationMethod(str, Enum):
    """Base amount used for the help back."""
    SALES_BASED = "sales_based"
    FULL_AMOUNT = "full_amount"
    DISTRIBUTED_AMOUNT = "distributed_amount"


class TaxBasis(str, Enum):
    TAX_EXCLUDED = "tax_excluded"
    TAX_INCLUDED = "tax_included"
    TAX_AND_SERVICE_INCLUDED = "tax_and_service_included"


_DISTRIBUTION_METHODS = {m.value for m in HelpDistributionMethod} | {"equal_all"}
_MULTI_CAST = {m.value for m in MultiCastDistribution}
_INCLUSION = {m.value for m in HelpSalesInclusion}
_TIMING = {t.value for t in RoundingTiming}
_PUBLISHED = {p.value for p in PublishedAggregation}
_HELP_BACK = {h.value for h in HelpBackCalculationMethod}


class SalesSettings(Base, TimestampMixin):
    """Store-level distribution policy.

    The ``item_*`` and ``receipt_*`` column groups configure the two
    aggregation views; ``castsales.services.sales.policy`` resolves each
    group into one ``AggregationPolicy``.
    """

    __tablename__ = "sales_settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, unique=True)

    # Item-based view
    item_exclude_consumption_tax: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    item_exclude_service_charge: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    item_multi_cast_distribution: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    item_help_distribution_method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    item_help_ratio: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    item_help_sales_inclusion: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    item_rounding_method: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    item_rounding_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    item_rounding_timing: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    item_nomination_distribute_all: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Receipt-based view
    receipt_exclude_consumption_tax: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    receipt_exclude_service_charge: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    receipt_multi_cast_distribution: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    receipt_help_distribution_method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    receipt_help_ratio: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    receipt_help_sales_inclusion: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    receipt_rounding_method: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    receipt_rounding_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    receipt_rounding_timing: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Shared
    non_help_staff_names: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    multi_nomination_ratios: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    published_aggregation: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    help_back_calculation_method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    include_external_in_item_sales: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    include_external_in_receipt_sales: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @validates("item_help_ratio", "receipt_help_ratio")
    def _validate_ratio(self, key, value):
        return percentage(key, value)

    @validates("non_help_staff_names", "multi_nomination_ratios")
    def _validate_lists(self, key, value):
        return validate_list(key, value)

    @validates("item_help_distribution_method", "receipt_help_distribution_method")
    def _validate_method(self, key, value):
        return one_of(key, value, _DISTRIBUTION_METHODS)

    @validates("item_multi_cast_distribution", "receipt_multi_cast_distribution")
    def _validate_multi_cast(self, key, value):
        return one_of(key, value, _MULTI_CAST)

    @validates("item_help_sales_inclusion", "receipt_help_sales_inclusion")
    def _validate_inclusion(self, key, value):
        return one_of(key, value, _INCLUSION)

    @validates("item_rounding_timing", "receipt_rounding_timing")
    def _validate_timing(self, key, value):
        return one_of(key, value, _TIMING)

    @validates("published_aggregation")
    def _validate_published(self, key, value):
        return one_of(key, value, _PUBLISHED)

    @validates("help_back_calculation_method")
    def _validate_help_back(self, key, value):
        return one_of(key, value, _HELP_BACK)


class CastBackRate(Base, TimestampMixin):
    """Commission ("back") percentage for a cast, optionally scoped to a product or category."""

    __tablename__ = "cast_back_rates"

    id: Mapped[int] = mapped_column(primary_key=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    cast_id: Mapped[int] = mapped_column(Integer, ForeignKey("casts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    self_back_ratio: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=Decimal("0"), nullable=False)
    help_back_ratio: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @validates("self_back_ratio", "help_back_ratio")
    def _validate_ratio(self, key, value):
        return percentage(key, value)


class CastDailyItem(Base):
    """Per order x product x (self cast, help cast) revenue split row.

    Recreated wholesale for every non-finalized cast on each recompute.
    """

    __tablename__ = "cast_daily_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    order_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    table_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    guest_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    cast_id: Mapped[int] = mapped_column(Integer, ForeignKey("casts.id", ondelete="CASCADE"), nullable=False, index=True)
    help_cast_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("casts.id", ondelete="SET NULL"), nullable=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    needs_cast: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    subtotal: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    self_sales: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    help_sales: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    self_back_rate: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=Decimal("0"), nullable=False)
    self_back_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    help_back_rate: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=Decimal("0"), nullable=False)
    help_back_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_self: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    self_sales_item_based: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    self_sales_receipt_based: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    help_sales_item_based: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    help_sales_receipt_based: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class CastDailyStats(Base, TimestampMixin):
    """Per cast per day summary. ``is_finalized`` freezes the row and its items."""

    __tablename__ = "cast_daily_stats"
    __table_args__ = (
        UniqueConstraint("cast_id", "store_id", "date", name="uq_cast_daily_stats_cast_store_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    cast_id: Mapped[int] = mapped_column(Integer, ForeignKey("casts.id", ondelete="CASCADE"), nullable=False, index=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    self_sales_item_based: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    help_sales_item_based: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_sales_item_based: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    product_back_item_based: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    self_sales_receipt_based: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    help_sales_receipt_based: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_sales_receipt_based: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    product_back_receipt_based: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    work_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=Decimal("0"), nullable=False)
    base_hourly_wage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    special_day_bonus: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    costume_bonus: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_hourly_wage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    wage_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    costume_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    wage_status_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    nomination_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_finalized: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @validates("work_hours", "wage_amount", "nomination_count")
    def _validate_non_negative(self, key, value):
        return non_negative(key, value)


class RecalculationLock(Base):
    """Advisory lock row; one per running (store, date) recomputation or job."""

    __tablename__ = "recalculation_locks"

    id: Mapped[int] = mapped_column(primary_key=True)
    lock_key: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    locked_by: Mapped[str] = mapped_column(String(120), nullable=False)
    locked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
