"""
Money splitter.

Turns one normalized amount plus the SELF / HELP recipients of a line into
a list of ``Share`` records. Division is integer floor division; the floor
remainder of an equal division goes one unit at a time to the earliest
recipients, so shares always add up to the amount being divided.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence, Tuple

from castsales.models.sales import HelpDistributionMethod
from castsales.services.sales.policy import AggregationPolicy


class ShareRole(str, Enum):
    SELF = "self"
    HELP = "help"


@dataclass(frozen=True)
class Share:
    cast_name: str
    role: ShareRole
    amount: int


def divide_evenly(amount: int, count: int) -> List[int]:
    """Divide ``amount`` into ``count`` parts; earlier parts absorb the remainder."""
    if count <= 0:
        return []
    base, remainder = divmod(amount, count)
    return [base + 1 if index < remainder else base for index in range(count)]


def _group_totals(amount: int, policy: AggregationPolicy, has_self: bool, has_help: bool) -> Tuple[int, int]:
    """Split ``amount`` between the SELF and HELP groups."""
    method = policy.effective_method
    if method == HelpDistributionMethod.ALL_TO_NOMINATION:
        if has_self:
            return amount, 0
        return 0, amount
    if not has_help:
        return amount, 0
    if not has_self:
        return 0, amount
    if method == HelpDistributionMethod.EQUAL:
        self_total = amount // 2
    else:
        self_total = (amount * (100 - policy.help_ratio)) // 100
    return self_total, amount - self_total


def split_amount(
    amount: int,
    self_casts: Sequence[str],
    help_casts: Sequence[str],
    policy: AggregationPolicy,
) -> List[Share]:
    """Split one line's amount between its SELF and HELP casts.

    HELP shares are always present in the result; their amount is zero
    unless the policy includes help sales.
    """
    self_casts = list(self_casts)
    help_casts = [name for name in help_casts if name not in self_casts]
    if not self_casts and not help_casts:
        return []

    if policy.effective_method == HelpDistributionMethod.EQUAL_PER_PERSON:
        everyone = self_casts + help_casts
        parts = divide_evenly(amount, len(everyone))
        self_parts = parts[:len(self_casts)]
        help_parts = parts[len(self_casts):]
    else:
        self_total, help_total = _group_totals(amount, policy, bool(self_casts), bool(help_casts))
        self_parts = divide_evenly(self_total, len(self_casts))
        help_parts = divide_evenly(help_total, len(help_casts))

    if not policy.includes_help_sales:
        help_parts = [0] * len(help_casts)

    shares = [Share(name, ShareRole.SELF, part) for name, part in zip(self_casts, self_parts)]
    shares.extend(Share(name, ShareRole.HELP, part) for name, part in zip(help_casts, help_parts))
    return shares


def split_to_self(amount: int, self_casts: Sequence[str]) -> List[Share]:
    """Divide an amount among SELF casts only."""
    self_casts = list(self_casts)
    return [
        Share(name, ShareRole.SELF, part)
        for name, part in zip(self_casts, divide_evenly(amount, len(self_casts)))
    ]
