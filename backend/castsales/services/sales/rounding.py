"""Tax exclusion and rounding of integer currency amounts.

All amounts are integer currency units. Every operation floors toward
negative infinity, matching the way receipts are printed.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from castsales.models.sales import RoundingType

ROUNDING_POSITIONS = (1, 10, 100, 1000)


def rate_to_percent(rate: float) -> int:
    """Convert a fractional rate (0.10) to a whole percent (10), rounding half up."""
    return int((Decimal(str(rate)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def exclude_tax(amount: int, tax_rate: float) -> int:
    """Strip consumption tax from a tax-included amount: floor(amount * 100 / (100 + pct))."""
    tax_percent = rate_to_percent(tax_rate)
    return (amount * 100) // (100 + tax_percent)


def add_service_charge(amount: int, service_rate: float) -> int:
    """Add the service-fee surcharge, flooring the result."""
    service_percent = rate_to_percent(service_rate)
    return (amount * (100 + service_percent)) // 100


def apply_rounding(amount: int, position: int, rounding_type: Union[RoundingType, str]) -> int:
    """Round ``amount`` to a multiple of ``position``.

    ``round`` is half-up toward positive infinity; a non-positive position
    leaves the amount untouched.
    """
    rounding_type = RoundingType(rounding_type)
    if position <= 0 or rounding_type == RoundingType.NONE:
        return amount
    if rounding_type == RoundingType.FLOOR:
        return (amount // position) * position
    if rounding_type == RoundingType.CEIL:
        return -((-amount) // position) * position
    # ROUND
    return ((2 * amount + position) // (2 * position)) * position


def normalize_amount(
    amount: int,
    tax_rate: float,
    exclude_consumption_tax: bool,
    rounding_position: int,
    rounding_type: Union[RoundingType, str],
    service_rate: float = 0.0,
    include_service_charge: bool = False,
) -> int:
    """Gross amount -> (optionally tax-excluded / service-included) -> rounded amount."""
    result = amount
    if exclude_consumption_tax:
        result = exclude_tax(result, tax_rate)
    elif include_service_charge and service_rate:
        result = add_service_charge(result, service_rate)
    return apply_rounding(result, rounding_position, rounding_type)
