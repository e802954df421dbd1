"""Commission ("back") rate lookup."""

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from castsales.services.sales.splitter import ShareRole
from castsales.services.sales.types import BackRateRecord

FULL_SELF_RATIO = Decimal("100")


class RateSource(str, Enum):
    PRODUCT = "product"
    CATEGORY = "category"
    DEFAULT = "default"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class BackRateResolution:
    ratio: Decimal
    source: RateSource


def back_amount(share: int, ratio: Union[Decimal, int, float]) -> int:
    """floor(share * ratio / 100)"""
    value = Decimal(share) * Decimal(str(ratio)) / Decimal("100")
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


class BackRateTable:
    """Snapshot of a store's active back rates, indexed by cast."""

    def __init__(self, rates: Iterable[BackRateRecord]):
        self._by_cast: Dict[int, List[BackRateRecord]] = defaultdict(list)
        for rate in rates:
            self._by_cast[rate.cast_id].append(rate)

    def _candidates(self, cast_id: int, product_name: str, category: Optional[str]):
        """Matching rates in priority order."""
        rates = self._by_cast.get(cast_id, [])
        for rate in rates:
            if rate.product_name and rate.product_name == product_name:
                if rate.category is None or rate.category == category:
                    yield rate, RateSource.PRODUCT
        if category:
            for rate in rates:
                if not rate.product_name and rate.category == category:
                    yield rate, RateSource.CATEGORY
        for rate in rates:
            if not rate.product_name and not rate.category:
                yield rate, RateSource.DEFAULT

    def resolve(
        self,
        cast_id: int,
        product_name: str,
        category: Optional[str],
        role: ShareRole,
        fallback_help_ratio: int,
    ) -> BackRateResolution:
        """Exact product > category only > store default > settings fallback.

        The fallback is ``fallback_help_ratio`` for HELP and 100% for SELF.
        A rate without a help ratio is skipped for HELP lookups.
        """
        for rate, source in self._candidates(cast_id, product_name, category):
            ratio = rate.self_back_ratio if role == ShareRole.SELF else rate.help_back_ratio
            if ratio is not None:
                return BackRateResolution(Decimal(str(ratio)), source)
        if role == ShareRole.SELF:
            return BackRateResolution(FULL_SELF_RATIO, RateSource.FALLBACK)
        return BackRateResolution(Decimal(fallback_help_ratio), RateSource.FALLBACK)
