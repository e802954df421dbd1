"""SQLAlchemy models."""

from castsales.models.store import Store, SystemSetting
from castsales.models.staff import (
    Cast,
    Attendance,
    WageStatus,
    Costume,
    SpecialWageDay,
    CompensationSetting,
)
from castsales.models.order import Product, Order, OrderItem, ExternalChannelOrder
from castsales.models.sales import (
    SalesSettings,
    CastBackRate,
    CastDailyItem,
    CastDailyStats,
    RecalculationLock,
    HelpDistributionMethod,
    MultiCastDistribution,
    HelpSalesInclusion,
    RoundingType,
    RoundingTiming,
    PublishedAggregation,
    HelpBackCalculationMethod,
    TaxBasis,
)
from castsales.models.promotion import EventPromotion, PromotionThreshold, AggregationType

__all__ = [
    "Store",
    "SystemSetting",
    "Cast",
    "Attendance",
    "WageStatus",
    "Costume",
    "SpecialWageDay",
    "CompensationSetting",
    "Product",
    "Order",
    "OrderItem",
    "ExternalChannelOrder",
    "SalesSettings",
    "CastBackRate",
    "CastDailyItem",
    "CastDailyStats",
    "RecalculationLock",
    "HelpDistributionMethod",
    "MultiCastDistribution",
    "HelpSalesInclusion",
    "RoundingType",
    "RoundingTiming",
    "PublishedAggregation",
    "HelpBackCalculationMethod",
    "TaxBasis",
    "EventPromotion",
    "PromotionThreshold",
    "AggregationType",
]
