"""
Nomination parsing and SELF / HELP classification of receipt lines.

A nomination is the staff name(s) a guest asked for. Names listed in the
store's ``non_help_staff_names`` (e.g. "walk-in") mean nobody in
particular was nominated, which turns every attached cast into SELF.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from castsales.services.sales.types import OrderItemRecord, OrderRecord


class LineClass(str, Enum):
    SELF_ONLY = "self_only"
    HELP_ONLY = "help_only"
    MIXED = "mixed"
    UNATTRIBUTED = "unattributed"


def parse_staff_names(value: Union[str, Sequence[str], None]) -> List[str]:
    """Split a comma-joined name list, trimming blanks and duplicates, keeping order."""
    if not value:
        return []
    parts = value.split(",") if isinstance(value, str) else list(value)
    names: List[str] = []
    for part in parts:
        name = (part or "").strip()
        if name and name not in names:
            names.append(name)
    return names


@dataclass(frozen=True)
class Nomination:
    """An order's nomination split into real casts and placeholder labels."""
    names: Tuple[str, ...]
    real: Tuple[str, ...]

    @property
    def is_free(self) -> bool:
        """No specific person nominated."""
        return not self.real

    def __contains__(self, name: str) -> bool:
        return name in self.real


def resolve_nomination(staff_name: Union[str, Sequence[str], None], non_help_names: Iterable[str]) -> Nomination:
    names = parse_staff_names(staff_name)
    placeholders = set(non_help_names or [])
    return Nomination(
        names=tuple(names),
        real=tuple(name for name in names if name not in placeholders),
    )


@dataclass(frozen=True)
class ItemClassification:
    self_casts: Tuple[str, ...]
    help_casts: Tuple[str, ...]

    @property
    def line_class(self) -> LineClass:
        if self.self_casts and self.help_casts:
            return LineClass.MIXED
        if self.self_casts:
            return LineClass.SELF_ONLY
        if self.help_casts:
            return LineClass.HELP_ONLY
        return LineClass.UNATTRIBUTED


def classify_item(cast_names: Union[str, Sequence[str], None], nomination: Nomination) -> ItemClassification:
    """Partition the casts attached to one line into SELF and HELP."""
    attached = parse_staff_names(cast_names)
    if nomination.is_free:
        return ItemClassification(self_casts=tuple(attached), help_casts=())
    return ItemClassification(
        self_casts=tuple(name for name in attached if name in nomination),
        help_casts=tuple(name for name in attached if name not in nomination),
    )


@dataclass
class ReceiptLine:
    """One line of a receipt-view classification.

    ``self_amount`` goes straight to the receipt's self targets.
    ``shared_amount`` is split once by the view's method between the self
    targets and the line's help casts.
    """
    item: OrderItemRecord
    classification: ItemClassification
    amount: int
    self_amount: int
    shared_amount: int


@dataclass
class ReceiptClassification:
    nomination: Nomination
    self_targets: Tuple[str, ...]
    lines: List[ReceiptLine] = field(default_factory=list)

    @property
    def self_total(self) -> int:
        return sum(line.self_amount for line in self.lines)

    @property
    def shared_total(self) -> int:
        return sum(line.shared_amount for line in self.lines)

    @property
    def unattributed_total(self) -> int:
        return sum(
            line.amount for line in self.lines
            if line.classification.line_class == LineClass.UNATTRIBUTED
        )

    @property
    def receipt_class(self) -> Optional[LineClass]:
        """Overall class of the receipt; ``None`` for a receipt without lines."""
        has_self = any(line.classification.self_casts for line in self.lines)
        has_help = any(line.classification.help_casts for line in self.lines)
        if has_self and has_help:
            return LineClass.MIXED
        if has_help:
            return LineClass.HELP_ONLY
        if has_self:
            return LineClass.SELF_ONLY
        return LineClass.UNATTRIBUTED if self.lines else None


def classify_receipt(
    order: OrderRecord,
    nomination: Nomination,
    amount_of: Callable[[OrderItemRecord], int],
) -> ReceiptClassification:
    """Classify a whole receipt.

    Every line with help casts, mixed or help only, is shared as a whole,
    so each amount is distributed exactly once and the self and shared
    totals add up to the receipt's amount. Unattributed lines go entirely
    to the self side.
    """
    lines: List[ReceiptLine] = []
    self_seen: List[str] = []
    for item in order.items:
        classification = classify_item(item.cast_names, nomination)
        amount = amount_of(item)
        if classification.help_casts:
            self_amount, shared_amount = 0, amount
        else:
            self_amount, shared_amount = amount, 0
        for name in classification.self_casts:
            if name not in self_seen:
                self_seen.append(name)
        lines.append(ReceiptLine(item, classification, amount, self_amount, shared_amount))

    self_targets = tuple(self_seen) if nomination.is_free else nomination.real
    return ReceiptClassification(nomination=nomination, self_targets=self_targets, lines=lines)
