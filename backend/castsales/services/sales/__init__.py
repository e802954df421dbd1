# Sales distribution and aggregation engine

from castsales.services.sales.policy import (
    AggregationPolicy,
    AggregationView,
    SalesSettingsData,
    ViewSettings,
    default_sales_settings,
    resolve_policy,
)
from castsales.services.sales.rounding import apply_rounding, exclude_tax, normalize_amount
from castsales.services.sales.splitter import Share, ShareRole, split_amount
from castsales.services.sales.back_rates import BackRateTable, back_amount
from castsales.services.sales.repository import (
    SalesDataError,
    SalesPersistenceError,
    SalesRepositoryBase,
    SqlAlchemySalesRepository,
)
from castsales.services.sales.recalculation import (
    RecalculationResult,
    compute_daily_results,
    recalculate_for_date,
    recalculate_range,
    run_scheduled_recalculation,
    set_finalized,
)
from castsales.services.sales.promotions import (
    PromotionAchievement,
    PromotionDefinition,
    PromotionStats,
    ThresholdRecord,
    achievements_to_csv,
    evaluate_receipt,
    evaluate_receipts,
    promotion_stats,
)
