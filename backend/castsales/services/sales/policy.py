"""
Distribution policy resolution.

A store keeps two parallel configuration groups (item view and receipt
view). ``SalesSettingsData`` is the plain record of that configuration and
``resolve_policy`` flattens one group, with fallbacks, into an
``AggregationPolicy`` the splitter and normalizer consume.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from castsales.models.sales import (
    HelpBackCalculationMethod,
    HelpDistributionMethod,
    HelpSalesInclusion,
    MultiCastDistribution,
    PublishedAggregation,
    RoundingTiming,
    RoundingType,
    SalesSettings,
    TaxBasis,
)
from castsales.services.sales.rounding import normalize_amount

logger = logging.getLogger(__name__)

DEFAULT_HELP_RATIO = 50
DEFAULT_ROUNDING_POSITION = 100

# Compound values written by older settings screens.
LEGACY_ROUNDING_METHODS = {
    "floor_100": (RoundingType.FLOOR, 100),
    "floor_10": (RoundingType.FLOOR, 10),
    "ceil_100": (RoundingType.CEIL, 100),
    "round": (RoundingType.ROUND, None),
}
LEGACY_DISTRIBUTION_METHODS = {
    "equal_all": HelpDistributionMethod.EQUAL_PER_PERSON,
}


class AggregationView(str, Enum):
    ITEM = "item"
    RECEIPT = "receipt"


@dataclass
class ViewSettings:
    """Raw, possibly incomplete settings for one aggregation view."""
    exclude_consumption_tax: bool = True
    exclude_service_charge: bool = True
    multi_cast_distribution: Optional[str] = None
    help_distribution_method: Optional[str] = None
    help_ratio: Optional[int] = None
    help_sales_inclusion: Optional[str] = None
    rounding_method: Optional[str] = None
    rounding_position: Optional[int] = None
    rounding_timing: Optional[str] = None
    nomination_distribute_all: bool = False


@dataclass
class SalesSettingsData:
    """Plain copy of a store's ``sales_settings`` row."""
    store_id: int
    item: ViewSettings = field(default_factory=ViewSettings)
    receipt: ViewSettings = field(default_factory=ViewSettings)
    non_help_staff_names: List[str] = field(default_factory=list)
    multi_nomination_ratios: List[int] = field(default_factory=lambda: [50, 50])
    published_aggregation: str = PublishedAggregation.ITEM_BASED.value
    help_back_calculation_method: str = HelpBackCalculationMethod.SALES_BASED.value
    include_external_in_item_sales: bool = True
    include_external_in_receipt_sales: bool = True

    @classmethod
    def from_model(cls, row: SalesSettings) -> "SalesSettingsData":
        item = ViewSettings(
            exclude_consumption_tax=row.item_exclude_consumption_tax,
            exclude_service_charge=row.item_exclude_service_charge,
            multi_cast_distribution=row.item_multi_cast_distribution,
            help_distribution_method=row.item_help_distribution_method,
            help_ratio=row.item_help_ratio,
            help_sales_inclusion=row.item_help_sales_inclusion,
            rounding_method=row.item_rounding_method,
            rounding_position=row.item_rounding_position,
            rounding_timing=row.item_rounding_timing,
            nomination_distribute_all=row.item_nomination_distribute_all,
        )
        receipt = ViewSettings(
            exclude_consumption_tax=row.receipt_exclude_consumption_tax,
            exclude_service_charge=row.receipt_exclude_service_charge,
            multi_cast_distribution=row.receipt_multi_cast_distribution,
            help_distribution_method=row.receipt_help_distribution_method,
            help_ratio=row.receipt_help_ratio,
            help_sales_inclusion=row.receipt_help_sales_inclusion,
            rounding_method=row.receipt_rounding_method,
            rounding_position=row.receipt_rounding_position,
            rounding_timing=row.receipt_rounding_timing,
        )
        return cls(
            store_id=row.store_id,
            item=item,
            receipt=receipt,
            non_help_staff_names=list(row.non_help_staff_names or []),
            multi_nomination_ratios=list(row.multi_nomination_ratios or [50, 50]),
            published_aggregation=row.published_aggregation or PublishedAggregation.ITEM_BASED.value,
            help_back_calculation_method=(
                row.help_back_calculation_method or HelpBackCalculationMethod.SALES_BASED.value
            ),
            include_external_in_item_sales=row.include_external_in_item_sales,
            include_external_in_receipt_sales=row.include_external_in_receipt_sales,
        )

    def view(self, view: AggregationView) -> ViewSettings:
        return self.item if AggregationView(view) == AggregationView.ITEM else self.receipt

    @property
    def published_view(self) -> AggregationView:
        """View whose figures populate the public ``self_sales``/``help_sales`` columns."""
        if self.published_aggregation == PublishedAggregation.RECEIPT_BASED.value:
            return AggregationView.RECEIPT
        return AggregationView.ITEM


def default_view_settings() -> ViewSettings:
    return ViewSettings(
        exclude_consumption_tax=True,
        exclude_service_charge=True,
        multi_cast_distribution=MultiCastDistribution.ALL_EQUAL.value,
        help_distribution_method=HelpDistributionMethod.ALL_TO_NOMINATION.value,
        help_ratio=DEFAULT_HELP_RATIO,
        help_sales_inclusion=HelpSalesInclusion.BOTH.value,
        rounding_method=RoundingType.FLOOR.value,
        rounding_position=DEFAULT_ROUNDING_POSITION,
        rounding_timing=RoundingTiming.PER_ITEM.value,
        nomination_distribute_all=False,
    )


def default_sales_settings(store_id: int) -> SalesSettingsData:
    """Settings used when a store has never saved its own."""
    return SalesSettingsData(
        store_id=store_id,
        item=default_view_settings(),
        receipt=default_view_settings(),
    )


def parse_rounding_method(
    method: Optional[str], position: Optional[int]
) -> Tuple[RoundingType, int]:
    """Map a stored rounding method (plain or legacy compound) to (type, position)."""
    resolved_position = position if position is not None else DEFAULT_ROUNDING_POSITION
    if not method:
        return RoundingType.FLOOR, resolved_position
    if method in LEGACY_ROUNDING_METHODS:
        rounding_type, legacy_position = LEGACY_ROUNDING_METHODS[method]
        if position is None and legacy_position is not None:
            resolved_position = legacy_position
        return rounding_type, resolved_position
    try:
        return RoundingType(method), resolved_position
    except ValueError:
        logger.warning(f"Unknown rounding method '{method}', falling back to floor")
        return RoundingType.FLOOR, resolved_position


def resolve_tax_basis(exclude_consumption_tax: bool, exclude_service_charge: bool) -> TaxBasis:
    """Exactly one tax basis per view. Tax exclusion wins over the service flag."""
    if exclude_consumption_tax:
        if not exclude_service_charge:
            logger.warning("Service charge flag ignored while consumption tax is excluded")
        return TaxBasis.TAX_EXCLUDED
    if exclude_service_charge:
        return TaxBasis.TAX_INCLUDED
    return TaxBasis.TAX_AND_SERVICE_INCLUDED


def _distribution_method(value: Optional[str]) -> HelpDistributionMethod:
    if not value:
        return HelpDistributionMethod.ALL_TO_NOMINATION
    if value in LEGACY_DISTRIBUTION_METHODS:
        return LEGACY_DISTRIBUTION_METHODS[value]
    return HelpDistributionMethod(value)


@dataclass(frozen=True)
class AggregationPolicy:
    """Fully resolved distribution policy for one aggregation view."""
    view: AggregationView
    tax_basis: TaxBasis
    rounding_type: RoundingType
    rounding_position: int
    rounding_timing: RoundingTiming
    multi_cast_distribution: MultiCastDistribution
    help_distribution_method: HelpDistributionMethod
    help_ratio: int
    help_sales_inclusion: HelpSalesInclusion
    nomination_distribute_all: bool = False

    @property
    def exclude_tax(self) -> bool:
        return self.tax_basis == TaxBasis.TAX_EXCLUDED

    @property
    def include_service_charge(self) -> bool:
        return self.tax_basis == TaxBasis.TAX_AND_SERVICE_INCLUDED

    @property
    def includes_help_sales(self) -> bool:
        return self.help_sales_inclusion == HelpSalesInclusion.BOTH

    @property
    def per_item(self) -> bool:
        return self.rounding_timing == RoundingTiming.PER_ITEM

    @property
    def effective_method(self) -> HelpDistributionMethod:
        """``nomination_only`` overrides the configured method."""
        if self.multi_cast_distribution == MultiCastDistribution.NOMINATION_ONLY:
            return HelpDistributionMethod.ALL_TO_NOMINATION
        return self.help_distribution_method

    def normalize(self, amount: int, tax_rate: float, service_rate: float = 0.0) -> int:
        return normalize_amount(
            amount,
            tax_rate=tax_rate,
            exclude_consumption_tax=self.exclude_tax,
            rounding_position=self.rounding_position,
            rounding_type=self.rounding_type,
            service_rate=service_rate,
            include_service_charge=self.include_service_charge,
        )


def resolve_policy(settings: SalesSettingsData, view: AggregationView) -> AggregationPolicy:
    """Flatten one view's settings into an ``AggregationPolicy``."""
    view = AggregationView(view)
    raw = settings.view(view)
    rounding_type, rounding_position = parse_rounding_method(raw.rounding_method, raw.rounding_position)
    help_ratio = raw.help_ratio if raw.help_ratio is not None else DEFAULT_HELP_RATIO
    return AggregationPolicy(
        view=view,
        tax_basis=resolve_tax_basis(raw.exclude_consumption_tax, raw.exclude_service_charge),
        rounding_type=rounding_type,
        rounding_position=rounding_position,
        rounding_timing=RoundingTiming(raw.rounding_timing or RoundingTiming.PER_ITEM.value),
        multi_cast_distribution=MultiCastDistribution(
            raw.multi_cast_distribution or MultiCastDistribution.ALL_EQUAL.value
        ),
        help_distribution_method=_distribution_method(raw.help_distribution_method),
        help_ratio=min(max(int(help_ratio), 0), 100),
        help_sales_inclusion=HelpSalesInclusion(raw.help_sales_inclusion or HelpSalesInclusion.BOTH.value),
        nomination_distribute_all=view == AggregationView.ITEM and raw.nomination_distribute_all,
    )
