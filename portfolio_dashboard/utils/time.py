"""Time utilities (market-local timezone)."""

from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo

from portfolio_dashboard.config import settings

LOCAL_TZ = ZoneInfo(settings.TIMEZONE)


def now_local() -> datetime:
    """Current time in the market timezone, timezone-aware."""
    return datetime.now(LOCAL_TZ)


def to_local(dt: datetime, naive_assumed_tz: tzinfo = timezone.utc) -> datetime:
    """Convert datetime to the market timezone."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=naive_assumed_tz)
    return dt.astimezone(LOCAL_TZ)


def period_label(dt: datetime) -> str:
    """
    Label for a performance series point.

    Refresh passes run seconds apart, so the label carries the wall-clock
    time of the pass rather than a calendar period.
    """
    return to_local(dt).strftime("%d %b %H:%M:%S")
