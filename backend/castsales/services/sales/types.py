"""Plain records exchanged between the sales engine and its data source.

The engine never touches ORM objects: the repository converts rows into
these dataclasses on the way in, and the engine hands back
``DailyItemRow`` / ``DailyStatsRow`` records for the repository to persist.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, NamedTuple, Optional, Set

from castsales.services.sales.policy import SalesSettingsData


# ============== Inbound records ==============

@dataclass
class OrderItemRecord:
    """One receipt line."""
    product_name: str
    quantity: int
    unit_price: int
    subtotal: int
    category: Optional[str] = None
    cast_names: List[str] = field(default_factory=list)
    needs_cast: bool = True
    id: Optional[int] = None

    @property
    def raw_amount(self) -> int:
        return self.unit_price * self.quantity


@dataclass
class OrderRecord:
    """One receipt with its nomination and lines."""
    id: str
    staff_name: Optional[str]
    order_date: datetime
    items: List[OrderItemRecord] = field(default_factory=list)
    table_number: Optional[str] = None
    guest_name: Optional[str] = None
    guest_count: Optional[int] = None
    checkout_datetime: Optional[datetime] = None
    total_incl_tax: Optional[int] = None


@dataclass
class CastRecord:
    id: int
    name: str


@dataclass
class BackRateRecord:
    cast_id: int
    self_back_ratio: Decimal
    help_back_ratio: Optional[Decimal] = None
    product_name: Optional[str] = None
    category: Optional[str] = None


@dataclass
class AttendanceRecord:
    cast_name: str
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None
    costume_id: Optional[int] = None


@dataclass
class CompensationRecord:
    cast_id: int
    status_id: Optional[int] = None
    hourly_wage_override: Optional[Decimal] = None
    target_year: Optional[int] = None
    target_month: Optional[int] = None
    help_back_calculation_method: Optional[str] = None


@dataclass
class ExternalSaleRecord:
    """Sale from an external marketplace credited to one cast."""
    id: int
    cast_id: int
    product_name: str
    actual_price: int
    quantity: int
    is_processed: bool = False

    @property
    def amount(self) -> int:
        return self.actual_price * self.quantity


@dataclass
class StoreRates:
    """Tax and service-fee rates as fractions (0.10 == 10%)."""
    tax_rate: float = 0.10
    service_rate: float = 0.0


@dataclass
class WageTables:
    """Wage tiers, costume bonuses, special-day bonus and per-cast compensation rows."""
    wage_statuses: Dict[int, int] = field(default_factory=dict)
    costume_bonuses: Dict[int, int] = field(default_factory=dict)
    special_day_bonus: int = 0
    compensations: List[CompensationRecord] = field(default_factory=list)


@dataclass
class DailyInputs:
    """Everything one (store, date) recomputation reads, loaded up front."""
    store_id: int
    business_date: date
    settings: SalesSettingsData
    rates: StoreRates
    orders: List[OrderRecord] = field(default_factory=list)
    casts: List[CastRecord] = field(default_factory=list)
    product_needs_cast: Dict[str, bool] = field(default_factory=dict)
    back_rates: List[BackRateRecord] = field(default_factory=list)
    attendance: List[AttendanceRecord] = field(default_factory=list)
    wages: WageTables = field(default_factory=WageTables)
    external_sales: List[ExternalSaleRecord] = field(default_factory=list)
    finalized_cast_ids: Set[int] = field(default_factory=set)


# ============== Outbound records ==============

class RowKey(NamedTuple):
    """Merge key for CastDailyItem rows."""
    order_id: Optional[str]
    cast_id: int
    help_cast_id: Optional[int]
    product_name: str
    category: Optional[str]


@dataclass
class DailyItemRow:
    """Computed CastDailyItem values."""
    store_id: int
    date: date
    order_id: Optional[str]
    cast_id: int
    help_cast_id: Optional[int]
    product_name: str
    category: Optional[str]
    table_number: Optional[str] = None
    guest_name: Optional[str] = None
    quantity: int = 0
    needs_cast: bool = True
    subtotal: int = 0
    is_self: bool = True
    self_sales: int = 0
    help_sales: int = 0
    self_back_rate: Decimal = Decimal("0")
    self_back_amount: int = 0
    help_back_rate: Decimal = Decimal("0")
    help_back_amount: int = 0
    self_sales_item_based: int = 0
    self_sales_receipt_based: int = 0
    help_sales_item_based: int = 0
    help_sales_receipt_based: int = 0

    @property
    def key(self) -> RowKey:
        return RowKey(self.order_id, self.cast_id, self.help_cast_id, self.product_name, self.category)


@dataclass
class DailyStatsRow:
    """Computed CastDailyStats values (never carries the finalization flag)."""
    cast_id: int
    store_id: int
    date: date
    self_sales_item_based: int = 0
    help_sales_item_based: int = 0
    total_sales_item_based: int = 0
    product_back_item_based: int = 0
    self_sales_receipt_based: int = 0
    help_sales_receipt_based: int = 0
    total_sales_receipt_based: int = 0
    product_back_receipt_based: int = 0
    work_hours: Decimal = Decimal("0")
    base_hourly_wage: int = 0
    special_day_bonus: int = 0
    costume_bonus: int = 0
    total_hourly_wage: int = 0
    wage_amount: int = 0
    costume_id: Optional[int] = None
    wage_status_id: Optional[int] = None
    nomination_count: int = 0
