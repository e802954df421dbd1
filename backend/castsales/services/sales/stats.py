"""Per-cast daily summary rows."""

from collections import defaultdict
from typing import Dict, List, Optional

from castsales.services.sales.aggregation import AggregationResult
from castsales.services.sales.policy import AggregationView
from castsales.services.sales.types import (
    AttendanceRecord,
    CompensationRecord,
    DailyInputs,
    DailyStatsRow,
)
from castsales.services.sales.wages import compute_wage, select_compensation


def _attendance_by_cast(inputs: DailyInputs) -> Dict[int, AttendanceRecord]:
    cast_ids = {cast.name: cast.id for cast in inputs.casts}
    attendance: Dict[int, AttendanceRecord] = {}
    for record in inputs.attendance:
        cast_id = cast_ids.get(record.cast_name)
        if cast_id is not None and cast_id not in attendance:
            attendance[cast_id] = record
    return attendance


def _compensations_by_cast(inputs: DailyInputs) -> Dict[int, List[CompensationRecord]]:
    grouped: Dict[int, List[CompensationRecord]] = defaultdict(list)
    for comp in inputs.wages.compensations:
        grouped[comp.cast_id].append(comp)
    return grouped


def build_daily_stats(inputs: DailyInputs, aggregation: AggregationResult) -> List[DailyStatsRow]:
    """One stats row per cast with sales, a completed shift or external sales.

    Finalized casts are left out entirely.
    """
    attendance = _attendance_by_cast(inputs)
    compensations = _compensations_by_cast(inputs)

    cast_ids = set(aggregation.totals)
    cast_ids.update(row.cast_id for row in aggregation.rows)
    cast_ids.update(row.help_cast_id for row in aggregation.rows if row.help_cast_id is not None)
    cast_ids.update(
        cast_id for cast_id, record in attendance.items()
        if record.check_in is not None and record.check_out is not None
    )
    cast_ids.update(sale.cast_id for sale in inputs.external_sales)
    cast_ids -= set(inputs.finalized_cast_ids)

    stats: List[DailyStatsRow] = []
    for cast_id in sorted(cast_ids):
        totals = aggregation.totals_for(cast_id)
        item = totals[AggregationView.ITEM]
        receipt = totals[AggregationView.RECEIPT]

        record: Optional[AttendanceRecord] = attendance.get(cast_id)
        compensation = select_compensation(compensations.get(cast_id, []), inputs.business_date)
        wage = compute_wage(record, compensation, inputs.wages)

        stats.append(DailyStatsRow(
            cast_id=cast_id,
            store_id=inputs.store_id,
            date=inputs.business_date,
            self_sales_item_based=item.self_sales,
            help_sales_item_based=item.help_sales,
            total_sales_item_based=item.total_sales,
            product_back_item_based=item.product_back,
            self_sales_receipt_based=receipt.self_sales,
            help_sales_receipt_based=receipt.help_sales,
            total_sales_receipt_based=receipt.total_sales,
            product_back_receipt_based=receipt.product_back,
            work_hours=wage.work_hours,
            base_hourly_wage=wage.base_hourly_wage,
            special_day_bonus=wage.special_day_bonus,
            costume_bonus=wage.costume_bonus,
            total_hourly_wage=wage.total_hourly_wage,
            wage_amount=wage.wage_amount,
            costume_id=wage.costume_id,
            wage_status_id=wage.wage_status_id,
            nomination_count=aggregation.nomination_counts.get(cast_id, 0),
        ))
    return stats
