"""Schemas for recalculation, finalization and promotion evaluation."""

from datetime import date as date_type, datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from castsales.services.sales.types import OrderItemRecord, OrderRecord


# ============== Recalculation ==============

class RecalculateRequest(BaseModel):
    """Recalculate one business day, or every day of a range."""
    store_id: int = Field(..., gt=0)
    date: Optional[date_type] = None
    date_from: Optional[date_type] = None
    date_to: Optional[date_type] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.date is None and (self.date_from is None or self.date_to is None):
            raise ValueError("Either date or both date_from and date_to are required")
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must be on or before date_to")
        return self


class RecalculationResultResponse(BaseModel):
    success: bool
    castsProcessed: int = 0
    itemsProcessed: int = 0
    error: Optional[str] = None
    storeId: Optional[int] = None
    date: Optional[str] = None


class RecalculationRangeResponse(BaseModel):
    results: List[RecalculationResultResponse]


# ============== Finalization ==============

class FinalizeRequest(BaseModel):
    store_id: int = Field(..., gt=0)
    date_from: date_type
    date_to: date_type
    unfinalize: bool = False

    @model_validator(mode="after")
    def check_range(self):
        if self.date_from > self.date_to:
            raise ValueError("date_from must be on or before date_to")
        return self


class FinalizeResponse(BaseModel):
    success: bool
    action: str
    recordsUpdated: int


# ============== Promotions ==============

class ReceiptItemIn(BaseModel):
    product_name: str = ""
    category: Optional[str] = None
    unit_price: int = 0
    quantity: int = 1
    subtotal: int = 0


class ReceiptIn(BaseModel):
    id: str
    table_number: Optional[str] = None
    guest_name: Optional[str] = None
    staff_name: Union[str, List[str], None] = None
    checkout_datetime: Optional[datetime] = None
    total_incl_tax: Optional[int] = None
    items: List[ReceiptItemIn] = []

    def to_record(self) -> OrderRecord:
        return OrderRecord(
            id=self.id,
            staff_name=self.staff_name,
            order_date=self.checkout_datetime or datetime.min,
            table_number=self.table_number,
            guest_name=self.guest_name,
            checkout_datetime=self.checkout_datetime,
            total_incl_tax=self.total_incl_tax,
            items=[
                OrderItemRecord(
                    product_name=item.product_name,
                    category=item.category,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    subtotal=item.subtotal,
                )
                for item in self.items
            ],
        )


class EvaluatePromotionRequest(BaseModel):
    receipts: List[ReceiptIn] = []


class ThresholdOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    min_amount: int
    max_amount: Optional[int] = None
    reward_name: str


class AchievementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_id: str
    table_number: Optional[str] = None
    guest_name: Optional[str] = None
    staff_name: Optional[str] = None
    checkout_datetime: Optional[datetime] = None
    target_amount: int
    achieved_threshold: Optional[ThresholdOut] = None
    next_threshold: Optional[ThresholdOut] = None
    remaining_amount: Optional[int] = None


class PromotionStatsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_orders: int
    achieved_orders: int
    achievement_rate: int
    total_target_amount: int
    average_target_amount: int
    threshold_counts: Dict[str, int]


class EvaluatePromotionResponse(BaseModel):
    promotion_id: int
    promotion_name: str
    achievements: List[AchievementOut]
    stats: PromotionStatsOut
