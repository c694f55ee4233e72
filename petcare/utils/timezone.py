# FILE: petcare/utils/timezone.py
from __future__ import annotations

from datetime import datetime, date
from zoneinfo import ZoneInfo

from petcare.core.config import settings

BUSINESS_TZ = ZoneInfo(settings.BUSINESS_TIMEZONE)


def now_local() -> datetime:
    """
    Returns a *naive* datetime in the business timezone.
    DateTime columns are naive, so the tzinfo is dropped before storing.
    """
    return datetime.now(BUSINESS_TZ).replace(tzinfo=None)


def today_local() -> date:
    return now_local().date()
