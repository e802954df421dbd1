"""Cast roster, attendance and wage configuration models."""

from __future__ import annotations
from datetime import datetime, date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, String, Integer, Date, DateTime, ForeignKey, Numeric
from sqlalchemy.orm import Mapped, mapped_column, validates

from castsales.db.base import Base, TimestampMixin
from castsales.models.sales import HelpBackCalculationMethod
from castsales.models.validators import non_negative, one_of

_HELP_BACK = {h.value for h in HelpBackCalculationMethod}


class Cast(Base, TimestampMixin):
    """Staff member who can be nominated or attached to order lines."""

    __tablename__ = "casts"

    id: Mapped[int] = mapped_column(primary_key=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Attendance(Base):
    """Clock-in/out record for one cast on one business day."""

    __tablename__ = "attendance"

    id: Mapped[int] = mapped_column(primary_key=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    cast_name: Mapped[str] = mapped_column(String(255), nullable=False)
    check_in_datetime: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    check_out_datetime: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    costume_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("costumes.id", ondelete="SET NULL"), nullable=True)


class WageStatus(Base):
    """Hourly wage tier."""

    __tablename__ = "wage_statuses"

    id: Mapped[int] = mapped_column(primary_key=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    hourly_wage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @validates("hourly_wage")
    def _validate_hourly_wage(self, key, value):
        return non_negative(key, value)


class Costume(Base):
    """Costume with an hourly wage adjustment."""

    __tablename__ = "costumes"

    id: Mapped[int] = mapped_column(primary_key=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    wage_adjustment: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class SpecialWageDay(Base):
    """Date on which every cast's hourly wage is adjusted."""

    __tablename__ = "special_wage_days"

    id: Mapped[int] = mapped_column(primary_key=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    wage_adjustment: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class CompensationSetting(Base, TimestampMixin):
    """Per-cast wage assignment, optionally scoped to a target year/month."""

    __tablename__ = "compensation_settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    cast_id: Mapped[int] = mapped_column(Integer, ForeignKey("casts.id", ondelete="CASCADE"), nullable=False, index=True)
    status_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("wage_statuses.id", ondelete="SET NULL"), nullable=True)
    hourly_wage_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    target_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    target_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # Overrides the store's help back basis when this cast is the helper
    help_back_calculation_method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @validates("hourly_wage_override")
    def _validate_override(self, key, value):
        return non_negative(key, value)

    @validates("help_back_calculation_method")
    def _validate_help_back(self, key, value):
        return one_of(key, value, _HELP_BACK)
