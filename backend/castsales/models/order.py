"""Orders (receipts), their line items, products and external channel sales."""

from __future__ import annotations
from datetime import datetime, date
from typing import List, Optional

from sqlalchemy import Boolean, String, Integer, Date, DateTime, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from castsales.db.base import Base, TimestampMixin
from castsales.models.validators import non_negative, validate_list


class Product(Base):
    """Sellable product. ``needs_cast`` is False for flat charges with no staff attribution."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    price: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    needs_cast: Mapped[Optional[bool]] = mapped_column(Boolean, default=True, nullable=True)


class Order(Base, TimestampMixin):
    """A receipt. ``staff_name`` holds the nomination, comma-joined when there are several."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    staff_name: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    order_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    checkout_datetime: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    table_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    guest_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    guest_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_incl_tax: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )


class OrderItem(Base):
    """A receipt line. ``cast_names`` lists every cast attached to the line."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[str] = mapped_column(String(64), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    cast_names: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unit_price: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    subtotal: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")

    @validates("cast_names")
    def _validate_cast_names(self, key, value):
        return validate_list(key, value)

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return non_negative(key, value)


class ExternalChannelOrder(Base, TimestampMixin):
    """Sale made through an external marketplace and credited to one cast."""

    __tablename__ = "external_channel_orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    business_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    cast_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("casts.id", ondelete="SET NULL"), nullable=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    actual_price: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_processed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
