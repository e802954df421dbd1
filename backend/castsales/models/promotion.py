"""Event promotion definitions and their reward thresholds."""

from __future__ import annotations
from datetime import date
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, String, Integer, Date, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from castsales.db.base import Base, TimestampMixin
from castsales.models.validators import non_negative, validate_list


class AggregationType(str, Enum):
    """Which part of a receipt counts toward a promotion."""
    CATEGORY_BASED = "category_based"
    TOTAL_BASED = "total_based"


class EventPromotion(Base, TimestampMixin):
    """Promotion whose reward depends on the amount spent on one receipt."""

    __tablename__ = "event_promotions"

    id: Mapped[int] = mapped_column(primary_key=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    aggregation_type: Mapped[str] = mapped_column(String(20), default=AggregationType.TOTAL_BASED.value, nullable=False)
    target_categories: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    exclude_tax: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rounding_method: Mapped[str] = mapped_column(String(10), default="none", nullable=False)
    rounding_position: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    thresholds: Mapped[List["PromotionThreshold"]] = relationship(
        back_populates="promotion",
        cascade="all, delete-orphan",
        order_by="PromotionThreshold.min_amount",
    )

    @validates("target_categories")
    def _validate_categories(self, key, value):
        return validate_list(key, value)


class PromotionThreshold(Base):
    """Reward tier: reached when ``min_amount <= amount < max_amount`` (no upper bound when null)."""

    __tablename__ = "promotion_thresholds"

    id: Mapped[int] = mapped_column(primary_key=True)
    promotion_id: Mapped[int] = mapped_column(Integer, ForeignKey("event_promotions.id", ondelete="CASCADE"), nullable=False, index=True)
    min_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    max_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    reward_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    promotion: Mapped[EventPromotion] = relationship(back_populates="thresholds")

    @validates("min_amount", "max_amount")
    def _validate_amount(self, key, value):
        return non_negative(key, value)
