"""Store and per-store key/value settings."""

from __future__ import annotations
from typing import Optional

from sqlalchemy import Boolean, String, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from castsales.db.base import Base, TimestampMixin


class Store(Base, TimestampMixin):
    """A venue whose sales are aggregated independently."""

    __tablename__ = "stores"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class SystemSetting(Base):
    """Free-form per-store setting (tax_rate, service_fee_rate, business_day_start_hour)."""

    __tablename__ = "system_settings"
    __table_args__ = (
        UniqueConstraint("store_id", "setting_key", name="uq_system_settings_store_key"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    setting_key: Mapped[str] = mapped_column(String(100), nullable=False)
    setting_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
