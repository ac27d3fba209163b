import logging
from typing import Optional, Tuple
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from brokerdesk.core.config import settings
from brokerdesk.schemas.metrics import DateWindow

logger = logging.getLogger(__name__)

ALL_TIME_START = datetime(2020, 1, 1)
ALL_TIME_END = datetime(2099, 12, 31, 23, 59, 59)

_LABELS = {
    "today": "Today",
    "yesterday": "Yesterday",
    "7d": "Last 7 Days",
    "30d": "Last 30 Days",
    "all": "All Time",
}


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    """IANA zone for `name`; unknown or empty names fall back to DEFAULT_TIMEZONE."""
    try:
        return ZoneInfo(name or settings.DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using %s", name, settings.DEFAULT_TIMEZONE)
        return ZoneInfo(settings.DEFAULT_TIMEZONE)


def to_local(value: datetime, tz: ZoneInfo) -> datetime:
    """Naive UTC (as stored) -> aware local time."""
    return value.replace(tzinfo=dt_timezone.utc).astimezone(tz)


def to_utc_naive(value: datetime) -> datetime:
    return value.astimezone(dt_timezone.utc).replace(tzinfo=None)


def local_date(now: datetime, tz: ZoneInfo) -> date:
    return to_local(now, tz).date()


def local_day_bounds(day: date, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """UTC bounds of a local calendar day: [midnight, next midnight)."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return to_utc_naive(start), to_utc_naive(end)


def date_window(range_name: str, timezone: Optional[str] = None, now: Optional[datetime] = None) -> DateWindow:
    """
    UTC query bounds for a named range, computed midnight-to-midnight in the
    given timezone. `end` is inclusive (last microsecond of the local day).
    """
    tz_name = timezone or settings.DEFAULT_TIMEZONE
    tz = resolve_timezone(tz_name)
    now = now or datetime.utcnow()
    today = local_date(now, tz)

    if range_name == "today":
        first, last = today, today
    elif range_name == "yesterday":
        first = last = today - timedelta(days=1)
    elif range_name == "7d":
        first, last = today - timedelta(days=7), today
    elif range_name == "30d":
        first, last = today - timedelta(days=30), today
    elif range_name == "all":
        return DateWindow(
            range="all", label=_LABELS["all"], start=ALL_TIME_START, end=ALL_TIME_END,
            timezone=tz.key, bucket="day",
        )
    else:
        raise ValueError(f"Unknown date range '{range_name}'")

    start, _ = local_day_bounds(first, tz)
    _, next_midnight = local_day_bounds(last, tz)
    return DateWindow(
        range=range_name,
        label=_LABELS[range_name],
        start=start,
        end=next_midnight - timedelta(microseconds=1),
        timezone=tz.key,
        bucket="hour" if first == last else "day",
    )
