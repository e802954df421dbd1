"""Work hours and hourly wage for a cast's day."""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

from castsales.services.sales.types import AttendanceRecord, CompensationRecord, WageTables

TWO_PLACES = Decimal("0.01")


def calculate_work_hours(check_in: Optional[datetime], check_out: Optional[datetime]) -> Decimal:
    """Hours between clock-in and clock-out, two decimals.

    A clock-out at or before the clock-in crossed midnight.
    """
    if check_in is None or check_out is None:
        return Decimal("0")
    if check_out <= check_in:
        check_out = check_out + timedelta(days=1)
    seconds = Decimal(int((check_out - check_in).total_seconds()))
    return (seconds / Decimal(3600)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def select_compensation(
    compensations: Iterable[CompensationRecord], target: date
) -> Optional[CompensationRecord]:
    """Pick the compensation row for ``target``.

    Exact (year, month) > latest earlier (year, month) > undated > latest dated.
    """
    compensations = list(compensations)
    if not compensations:
        return None

    dated = [c for c in compensations if c.target_year is not None and c.target_month is not None]
    undated = [c for c in compensations if c.target_year is None or c.target_month is None]
    target_key = (target.year, target.month)

    for comp in dated:
        if (comp.target_year, comp.target_month) == target_key:
            return comp

    earlier = [c for c in dated if (c.target_year, c.target_month) < target_key]
    if earlier:
        return max(earlier, key=lambda c: (c.target_year, c.target_month))
    if undated:
        return undated[0]
    return max(dated, key=lambda c: (c.target_year, c.target_month))


def help_back_methods(compensations: Iterable[CompensationRecord], target: date) -> Dict[int, str]:
    """Help back basis per cast, taken from the compensation row for ``target``.

    Casts whose row leaves it unset are omitted and use the store setting.
    """
    grouped: Dict[int, List[CompensationRecord]] = defaultdict(list)
    for comp in compensations:
        grouped[comp.cast_id].append(comp)

    methods: Dict[int, str] = {}
    for cast_id, rows in grouped.items():
        selected = select_compensation(rows, target)
        if selected is not None and selected.help_back_calculation_method:
            methods[cast_id] = selected.help_back_calculation_method
    return methods


@dataclass
class WageBreakdown:
    work_hours: Decimal = Decimal("0")
    base_hourly_wage: int = 0
    special_day_bonus: int = 0
    costume_bonus: int = 0
    total_hourly_wage: int = 0
    wage_amount: int = 0
    costume_id: Optional[int] = None
    wage_status_id: Optional[int] = None


def compute_wage(
    attendance: Optional[AttendanceRecord],
    compensation: Optional[CompensationRecord],
    tables: WageTables,
) -> WageBreakdown:
    """(base + special day + costume) x hours, rounded half up."""
    breakdown = WageBreakdown()
    if attendance is None:
        return breakdown

    breakdown.work_hours = calculate_work_hours(attendance.check_in, attendance.check_out)

    if compensation is not None:
        breakdown.wage_status_id = compensation.status_id
        if compensation.hourly_wage_override is not None:
            breakdown.base_hourly_wage = int(
                Decimal(str(compensation.hourly_wage_override)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
            )
        elif compensation.status_id is not None:
            breakdown.base_hourly_wage = tables.wage_statuses.get(compensation.status_id, 0)

    breakdown.special_day_bonus = tables.special_day_bonus
    if attendance.costume_id is not None:
        breakdown.costume_id = attendance.costume_id
        breakdown.costume_bonus = tables.costume_bonuses.get(attendance.costume_id, 0)

    breakdown.total_hourly_wage = (
        breakdown.base_hourly_wage + breakdown.special_day_bonus + breakdown.costume_bonus
    )
    wage = Decimal(breakdown.total_hourly_wage) * breakdown.work_hours
    breakdown.wage_amount = int(wage.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return breakdown
