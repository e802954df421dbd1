"""Event promotion evaluation.

A promotion rewards a receipt once the amount spent (on the whole receipt
or on selected categories) reaches a threshold. Everything here is pure;
the caller loads the promotion and the receipts.
"""

import csv
import io
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence, Union

from castsales.models.promotion import AggregationType, EventPromotion
from castsales.models.sales import RoundingType
from castsales.services.sales.rounding import apply_rounding, exclude_tax
from castsales.services.sales.types import OrderRecord

NOT_ACHIEVED_LABEL = "(not achieved)"

CSV_HEADERS = [
    "Table",
    "Guest",
    "Nomination",
    "Checkout",
    "Target amount",
    "Achieved reward",
    "Next reward",
    "Remaining",
]


@dataclass
class ThresholdRecord:
    min_amount: int
    reward_name: str
    max_amount: Optional[int] = None
    id: Optional[int] = None


@dataclass
class PromotionDefinition:
    name: str
    aggregation_type: AggregationType = AggregationType.TOTAL_BASED
    target_categories: List[str] = field(default_factory=list)
    exclude_tax: bool = False
    rounding_method: RoundingType = RoundingType.NONE
    rounding_position: int = 1
    thresholds: List[ThresholdRecord] = field(default_factory=list)
    id: Optional[int] = None

    @classmethod
    def from_model(cls, promotion: EventPromotion) -> "PromotionDefinition":
        return cls(
            id=promotion.id,
            name=promotion.name,
            aggregation_type=AggregationType(promotion.aggregation_type),
            target_categories=list(promotion.target_categories or []),
            exclude_tax=promotion.exclude_tax,
            rounding_method=RoundingType(promotion.rounding_method or RoundingType.NONE.value),
            rounding_position=promotion.rounding_position or 1,
            thresholds=[
                ThresholdRecord(
                    id=t.id,
                    min_amount=t.min_amount,
                    max_amount=t.max_amount,
                    reward_name=t.reward_name,
                )
                for t in promotion.thresholds
            ],
        )


@dataclass
class NextThreshold:
    threshold: ThresholdRecord
    remaining: int


@dataclass
class PromotionAchievement:
    order_id: str
    table_number: Optional[str]
    guest_name: Optional[str]
    staff_name: Optional[str]
    checkout_datetime: Optional[datetime]
    target_amount: int
    achieved_threshold: Optional[ThresholdRecord] = None
    next_threshold: Optional[ThresholdRecord] = None
    remaining_amount: Optional[int] = None


@dataclass
class PromotionStats:
    total_orders: int = 0
    achieved_orders: int = 0
    achievement_rate: int = 0
    total_target_amount: int = 0
    average_target_amount: int = 0
    threshold_counts: Dict[str, int] = field(default_factory=dict)


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_target_amount(receipt: OrderRecord, promotion: PromotionDefinition, tax_rate: float = 0.10) -> int:
    """Amount of ``receipt`` that counts toward ``promotion``."""
    if promotion.aggregation_type == AggregationType.TOTAL_BASED:
        if receipt.total_incl_tax is not None:
            amount = receipt.total_incl_tax
        else:
            amount = sum(item.subtotal for item in receipt.items)
    else:
        targets = set(promotion.target_categories)
        amount = sum(
            item.subtotal for item in receipt.items
            if not targets or (item.category and item.category in targets)
        )

    if promotion.exclude_tax:
        amount = exclude_tax(amount, tax_rate)
    return apply_rounding(amount, promotion.rounding_position, promotion.rounding_method)


def achieved_threshold(amount: int, thresholds: Sequence[ThresholdRecord]) -> Optional[ThresholdRecord]:
    """Highest tier whose [min, max) range contains ``amount``."""
    for threshold in sorted(thresholds, key=lambda t: t.min_amount, reverse=True):
        if amount >= threshold.min_amount and (threshold.max_amount is None or amount < threshold.max_amount):
            return threshold
    return None


def next_threshold(amount: int, thresholds: Sequence[ThresholdRecord]) -> Optional[NextThreshold]:
    """Cheapest tier not reached yet, with the amount still missing."""
    for threshold in sorted(thresholds, key=lambda t: t.min_amount):
        if threshold.min_amount > amount:
            return NextThreshold(threshold=threshold, remaining=threshold.min_amount - amount)
    return None


def _staff_label(staff_name: Union[str, Sequence[str], None]) -> Optional[str]:
    if staff_name is None or isinstance(staff_name, str):
        return staff_name
    return ", ".join(staff_name)


def evaluate_receipt(
    receipt: OrderRecord, promotion: PromotionDefinition, tax_rate: float = 0.10
) -> PromotionAchievement:
    amount = compute_target_amount(receipt, promotion, tax_rate)
    upcoming = next_threshold(amount, promotion.thresholds)
    return PromotionAchievement(
        order_id=receipt.id,
        table_number=receipt.table_number,
        guest_name=receipt.guest_name,
        staff_name=_staff_label(receipt.staff_name),
        checkout_datetime=receipt.checkout_datetime,
        target_amount=amount,
        achieved_threshold=achieved_threshold(amount, promotion.thresholds),
        next_threshold=upcoming.threshold if upcoming else None,
        remaining_amount=upcoming.remaining if upcoming else None,
    )


def evaluate_receipts(
    receipts: Sequence[OrderRecord], promotion: PromotionDefinition, tax_rate: float = 0.10
) -> List[PromotionAchievement]:
    return [evaluate_receipt(receipt, promotion, tax_rate) for receipt in receipts]


def promotion_stats(achievements: Sequence[PromotionAchievement]) -> PromotionStats:
    total = len(achievements)
    achieved = [a for a in achievements if a.achieved_threshold is not None]
    total_amount = sum(a.target_amount for a in achievements)

    counts: Dict[str, int] = {}
    for a in achieved:
        name = a.achieved_threshold.reward_name
        counts[name] = counts.get(name, 0) + 1

    return PromotionStats(
        total_orders=total,
        achieved_orders=len(achieved),
        achievement_rate=_round_half_up(Decimal(len(achieved) * 100) / total) if total else 0,
        total_target_amount=total_amount,
        average_target_amount=_round_half_up(Decimal(total_amount) / total) if total else 0,
        threshold_counts=counts,
    )


def achievements_to_csv(achievements: Sequence[PromotionAchievement]) -> str:
    """UTF-8 CSV with a BOM so spreadsheet tools detect the encoding."""
    output = io.StringIO()
    writer = csv.writer(output, delimiter=",", quotechar='"', quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for a in achievements:
        writer.writerow([
            a.table_number or "",
            a.guest_name or "",
            a.staff_name or "",
            a.checkout_datetime.isoformat() if a.checkout_datetime else "",
            str(a.target_amount),
            a.achieved_threshold.reward_name if a.achieved_threshold else NOT_ACHIEVED_LABEL,
            a.next_threshold.reward_name if a.next_threshold else "",
            str(a.remaining_amount) if a.remaining_amount is not None else "",
        ])
    return "\ufeff" + output.getvalue()
