"""Business day helpers.

Venues close after midnight, so a checkout before the store's cutoff hour
(local time) belongs to the previous calendar day.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from castsales.core.config import settings


def _zone(tz_name: Optional[str]) -> ZoneInfo:
    return ZoneInfo(tz_name or settings.timezone)


def business_day_for(moment: datetime, cutoff_hour: Optional[int] = None, tz_name: Optional[str] = None) -> date:
    """Business day a timestamp belongs to. Naive timestamps are taken as UTC."""
    cutoff = settings.business_day_cutoff_hour if cutoff_hour is None else cutoff_hour
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    local = moment.astimezone(_zone(tz_name))
    if local.hour < cutoff:
        return local.date() - timedelta(days=1)
    return local.date()


def current_business_day(
    cutoff_hour: Optional[int] = None,
    tz_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> date:
    return business_day_for(now or datetime.now(timezone.utc), cutoff_hour, tz_name)


def business_day_range(
    day: date, cutoff_hour: Optional[int] = None, tz_name: Optional[str] = None
) -> Tuple[datetime, datetime]:
    """[start, end) of a business day as UTC instants."""
    cutoff = settings.business_day_cutoff_hour if cutoff_hour is None else cutoff_hour
    zone = _zone(tz_name)
    start = datetime.combine(day, time(hour=cutoff), tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time(hour=cutoff), tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)
