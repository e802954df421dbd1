"""
Daily aggregation of order lines into CastDailyItem rows and per-cast totals.

Every order is run through both aggregation views at once so each row
carries item-based and receipt-based figures side by side; the store's
published view only decides which pair lands in ``self_sales`` /
``help_sales``.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from castsales.models.sales import HelpBackCalculationMethod
from castsales.services.sales.back_rates import BackRateTable, back_amount
from castsales.services.sales.classifier import (
    LineClass,
    Nomination,
    classify_item,
    classify_receipt,
    resolve_nomination,
)
from castsales.services.sales.policy import (
    AggregationPolicy,
    AggregationView,
    SalesSettingsData,
    resolve_policy,
)
from castsales.services.sales.splitter import Share, ShareRole, split_amount, split_to_self
from castsales.services.sales.types import (
    CastRecord,
    DailyItemRow,
    ExternalSaleRecord,
    OrderItemRecord,
    OrderRecord,
    RowKey,
    StoreRates,
)

logger = logging.getLogger(__name__)

EXTERNAL_CATEGORY = "external"
VIEWS = (AggregationView.ITEM, AggregationView.RECEIPT)


class _Amount:
    """Running amount: ``fixed`` is final, ``raw`` still awaits normalization."""

    __slots__ = ("fixed", "raw")

    def __init__(self):
        self.fixed = 0
        self.raw = 0

    def add(self, amount: int, deferred: bool) -> None:
        if deferred:
            self.raw += amount
        else:
            self.fixed += amount

    def resolve(self, policy: AggregationPolicy, rates: StoreRates) -> int:
        return self.fixed + policy.normalize(self.raw, rates.tax_rate, rates.service_rate)


class _ViewAmounts:
    __slots__ = ("self_sales", "help_sales")

    def __init__(self):
        self.self_sales = _Amount()
        self.help_sales = _Amount()

    def for_role(self, role: ShareRole) -> _Amount:
        return self.self_sales if role == ShareRole.SELF else self.help_sales


def _new_view_amounts() -> Dict[AggregationView, _ViewAmounts]:
    return {view: _ViewAmounts() for view in VIEWS}


@dataclass
class CastViewTotals:
    self_sales: int = 0
    help_sales: int = 0
    product_back: int = 0

    @property
    def total_sales(self) -> int:
        return self.self_sales + self.help_sales


def _new_totals() -> Dict[AggregationView, CastViewTotals]:
    return {view: CastViewTotals() for view in VIEWS}


@dataclass
class AggregationResult:
    rows: List[DailyItemRow] = field(default_factory=list)
    totals: Dict[int, Dict[AggregationView, CastViewTotals]] = field(default_factory=dict)
    nomination_counts: Dict[int, int] = field(default_factory=dict)
    external_sale_ids: List[int] = field(default_factory=list)

    def totals_for(self, cast_id: int) -> Dict[AggregationView, CastViewTotals]:
        return self.totals.get(cast_id) or _new_totals()


class SalesAggregator:
    """Accumulates one store's business day.

    Usage::

        aggregator = SalesAggregator(store_id, day, settings, rates, casts)
        for order in orders:
            aggregator.add_order(order)
        result = aggregator.finish(BackRateTable(back_rates))
    """

    def __init__(
        self,
        store_id: int,
        business_date: date,
        settings: SalesSettingsData,
        rates: StoreRates,
        casts: Iterable[CastRecord],
        product_needs_cast: Optional[Dict[str, bool]] = None,
        help_back_methods: Optional[Dict[int, str]] = None,
    ):
        self.store_id = store_id
        self.business_date = business_date
        self.settings = settings
        self.rates = rates
        self.policies = {view: resolve_policy(settings, view) for view in VIEWS}
        self.published_view = settings.published_view
        self._cast_ids = {cast.name: cast.id for cast in casts}
        self._needs_cast = dict(product_needs_cast or {})
        self._help_back_methods = dict(help_back_methods or {})
        self._rows: Dict[RowKey, DailyItemRow] = {}
        self._row_amounts: Dict[RowKey, Dict[AggregationView, _ViewAmounts]] = {}
        self._cast_amounts: Dict[int, Dict[AggregationView, _ViewAmounts]] = defaultdict(_new_view_amounts)
        self._counted: Set[Tuple[str, int, RowKey]] = set()
        self._nomination_counts: Dict[int, int] = defaultdict(int)
        self._external_ids: List[int] = []

    # ============== Orders ==============

    def add_order(self, order: OrderRecord) -> None:
        nomination = resolve_nomination(order.staff_name, self.settings.non_help_staff_names)
        for name in nomination.real:
            cast_id = self._cast_ids.get(name)
            if cast_id is not None:
                self._nomination_counts[cast_id] += order.guest_count or 1

        for index, item in enumerate(order.items):
            self._add_item_view(order, index, item, nomination)
        self._add_receipt_view(order, nomination)

    def _item_needs_cast(self, item: OrderItemRecord) -> bool:
        return self._needs_cast.get(item.product_name, item.needs_cast)

    def _amount(self, item: OrderItemRecord, policy: AggregationPolicy) -> int:
        if policy.per_item:
            return policy.normalize(item.raw_amount, self.rates.tax_rate, self.rates.service_rate)
        return item.raw_amount

    def _add_item_view(self, order: OrderRecord, index: int, item: OrderItemRecord, nomination: Nomination) -> None:
        policy = self.policies[AggregationView.ITEM]
        if not self._item_needs_cast(item):
            return
        classification = classify_item(item.cast_names, nomination)
        if classification.line_class == LineClass.UNATTRIBUTED:
            return

        if nomination.is_free:
            self_targets: Sequence[str] = classification.self_casts
        elif policy.nomination_distribute_all or not classification.self_casts:
            self_targets = nomination.real
        else:
            self_targets = classification.self_casts

        shares = split_amount(self._amount(item, policy), self_targets, classification.help_casts, policy)
        self._record(order, index, item, shares, AggregationView.ITEM, self_targets)

    def _add_receipt_view(self, order: OrderRecord, nomination: Nomination) -> None:
        policy = self.policies[AggregationView.RECEIPT]
        receipt = classify_receipt(order, nomination, lambda item: self._amount(item, policy))
        targets = receipt.self_targets
        for index, line in enumerate(receipt.lines):
            shares = split_to_self(line.self_amount, targets)
            if line.classification.help_casts:
                shares.extend(split_amount(line.shared_amount, targets, line.classification.help_casts, policy))
            self._record(order, index, line.item, shares, AggregationView.RECEIPT, targets)

    def _record(
        self,
        order: OrderRecord,
        index: int,
        item: OrderItemRecord,
        shares: List[Share],
        view: AggregationView,
        self_targets: Sequence[str],
    ) -> None:
        lead_id = next((self._cast_ids[name] for name in self_targets if name in self._cast_ids), None)
        deferred = not self.policies[view].per_item
        for share in shares:
            cast_id = self._cast_ids.get(share.cast_name)
            if cast_id is None:
                continue
            if share.role == ShareRole.SELF:
                key = RowKey(order.id, cast_id, None, item.product_name, item.category)
            else:
                key = RowKey(order.id, lead_id if lead_id is not None else cast_id, cast_id,
                             item.product_name, item.category)
            self._row_for(key, order, index, item)
            self._row_amounts[key][view].for_role(share.role).add(share.amount, deferred)
            self._cast_amounts[cast_id][view].for_role(share.role).add(share.amount, deferred)

    def _row_for(self, key: RowKey, order: OrderRecord, index: int, item: OrderItemRecord) -> DailyItemRow:
        row = self._rows.get(key)
        if row is None:
            row = DailyItemRow(
                store_id=self.store_id,
                date=self.business_date,
                order_id=key.order_id,
                cast_id=key.cast_id,
                help_cast_id=key.help_cast_id,
                product_name=key.product_name,
                category=key.category,
                table_number=order.table_number,
                guest_name=order.guest_name,
                needs_cast=self._item_needs_cast(item),
                is_self=key.help_cast_id is None,
            )
            self._rows[key] = row
            self._row_amounts[key] = _new_view_amounts()

        # A line reaches the same row from both views; count it once.
        marker = (order.id, index, key)
        if marker not in self._counted:
            self._counted.add(marker)
            published = self.policies[self.published_view]
            row.quantity += item.quantity
            row.subtotal += published.normalize(item.subtotal, self.rates.tax_rate, self.rates.service_rate)
        return row

    # ============== External channel ==============

    def add_external_sale(self, sale: ExternalSaleRecord) -> None:
        """Credit a marketplace sale to its cast as SELF sales, without re-taxing."""
        key = RowKey(None, sale.cast_id, None, sale.product_name, EXTERNAL_CATEGORY)
        row = self._rows.get(key)
        if row is None:
            row = DailyItemRow(
                store_id=self.store_id,
                date=self.business_date,
                order_id=None,
                cast_id=sale.cast_id,
                help_cast_id=None,
                product_name=sale.product_name,
                category=EXTERNAL_CATEGORY,
            )
            self._rows[key] = row
            self._row_amounts[key] = _new_view_amounts()
        row.quantity += sale.quantity
        row.subtotal += sale.amount

        included = {
            AggregationView.ITEM: self.settings.include_external_in_item_sales,
            AggregationView.RECEIPT: self.settings.include_external_in_receipt_sales,
        }
        for view in VIEWS:
            if included[view]:
                self._row_amounts[key][view].self_sales.add(sale.amount, deferred=False)
                self._cast_amounts[sale.cast_id][view].self_sales.add(sale.amount, deferred=False)
        self._external_ids.append(sale.id)

    # ============== Results ==============

    def _help_back_method(self, helper_id: int) -> str:
        return self._help_back_methods.get(helper_id, self.settings.help_back_calculation_method)

    def _help_back_base(self, row: DailyItemRow) -> int:
        method = self._help_back_method(row.help_cast_id)
        if method == HelpBackCalculationMethod.FULL_AMOUNT.value:
            return row.subtotal
        if method == HelpBackCalculationMethod.DISTRIBUTED_AMOUNT.value:
            self_row = self._rows.get(row.key._replace(help_cast_id=None))
            return self_row.self_sales if self_row is not None else 0
        return row.help_sales

    def finish(self, back_rates: Optional[BackRateTable] = None) -> AggregationResult:
        """Normalize deferred amounts, apply back rates and return rows plus totals."""
        back_rates = back_rates or BackRateTable([])
        rates = self.rates
        result = AggregationResult(
            nomination_counts=dict(self._nomination_counts),
            external_sale_ids=list(self._external_ids),
        )

        for cast_id, per_view in self._cast_amounts.items():
            totals = result.totals.setdefault(cast_id, _new_totals())
            for view, amounts in per_view.items():
                policy = self.policies[view]
                totals[view].self_sales = amounts.self_sales.resolve(policy, rates)
                totals[view].help_sales = amounts.help_sales.resolve(policy, rates)

        for key, row in self._rows.items():
            amounts = self._row_amounts[key]
            item_policy = self.policies[AggregationView.ITEM]
            receipt_policy = self.policies[AggregationView.RECEIPT]
            row.self_sales_item_based = amounts[AggregationView.ITEM].self_sales.resolve(item_policy, rates)
            row.help_sales_item_based = amounts[AggregationView.ITEM].help_sales.resolve(item_policy, rates)
            row.self_sales_receipt_based = amounts[AggregationView.RECEIPT].self_sales.resolve(receipt_policy, rates)
            row.help_sales_receipt_based = amounts[AggregationView.RECEIPT].help_sales.resolve(receipt_policy, rates)
            if self.published_view == AggregationView.RECEIPT:
                row.self_sales = row.self_sales_receipt_based
                row.help_sales = row.help_sales_receipt_based
            else:
                row.self_sales = row.self_sales_item_based
                row.help_sales = row.help_sales_item_based

        fallback_help_ratio = self.policies[self.published_view].help_ratio
        for row in self._rows.values():
            self._apply_back_rates(row, back_rates, fallback_help_ratio, result)
            result.rows.append(row)

        logger.debug(
            f"Aggregated store {self.store_id} on {self.business_date}: "
            f"{len(result.rows)} rows, {len(result.totals)} casts"
        )
        return result

    def _apply_back_rates(
        self,
        row: DailyItemRow,
        back_rates: BackRateTable,
        fallback_help_ratio: int,
        result: AggregationResult,
    ) -> None:
        self_rate = back_rates.resolve(
            row.cast_id, row.product_name, row.category, ShareRole.SELF, fallback_help_ratio
        ).ratio
        row.self_back_rate = self_rate
        row.self_back_amount = back_amount(row.self_sales, self_rate)

        owner = result.totals.setdefault(row.cast_id, _new_totals())
        owner[AggregationView.ITEM].product_back += back_amount(row.self_sales_item_based, self_rate)
        owner[AggregationView.RECEIPT].product_back += back_amount(row.self_sales_receipt_based, self_rate)

        if row.help_cast_id is None:
            return

        help_rate = back_rates.resolve(
            row.help_cast_id, row.product_name, row.category, ShareRole.HELP, fallback_help_ratio
        ).ratio
        row.help_back_rate = help_rate
        row.help_back_amount = back_amount(self._help_back_base(row), help_rate)

        helper = result.totals.setdefault(row.help_cast_id, _new_totals())
        if self._help_back_method(row.help_cast_id) == HelpBackCalculationMethod.SALES_BASED.value:
            helper[AggregationView.ITEM].product_back += back_amount(row.help_sales_item_based, help_rate)
            helper[AggregationView.RECEIPT].product_back += back_amount(row.help_sales_receipt_based, help_rate)
        else:
            # Non sales-based help backs do not depend on the view.
            for view in VIEWS:
                helper[view].product_back += row.help_back_amount
