"""Time helpers for UTC timestamps and recipient-local quiet hours"""
from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def from_millis(value) -> datetime:
    """Convert epoch milliseconds (int or numeric string) to naive UTC"""
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc).replace(tzinfo=None)


def parse_clock(value: str) -> time:
    """Parse an ``HH:mm`` wall-clock string"""
    hour, minute = value.split(":")
    return time(int(hour), int(minute))


def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA zone name, falling back to UTC for unknown zones"""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', falling back to UTC")
        return ZoneInfo("UTC")


def is_valid_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def is_within_quiet_hours(
    enabled: bool,
    start_time: str,
    end_time: str,
    tz_name: str,
    now: Optional[datetime] = None
) -> bool:
    """
    Check whether ``now`` falls inside a recipient's quiet-hours window

    The window is stored as zone-naive ``HH:mm`` strings; the recipient's
    timezone is applied here. Start and end are placed on the recipient's
    current local day; when end falls before start it is moved to the next
    day, so the window runs from tonight into tomorrow morning. Both bounds
    are inclusive. An instant between local midnight and ``end`` lies before
    today's start and is not held back.

    Args:
        enabled: Whether quiet hours are switched on
        start_time: Window start, ``HH:mm`` local clock
        end_time: Window end, ``HH:mm`` local clock
        tz_name: IANA timezone name of the recipient
        now: Instant to evaluate (aware; naive is read as UTC). Defaults to now.

    Returns:
        True if a notification should be held back
    """
    if not enabled:
        return False

    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    local = now.astimezone(get_zone(tz_name))
    start_clock = parse_clock(start_time)
    end_clock = parse_clock(end_time)

    start = local.replace(hour=start_clock.hour, minute=start_clock.minute, second=0, microsecond=0)
    end = local.replace(hour=end_clock.hour, minute=end_clock.minute, second=0, microsecond=0)
    if end < start:
        end += timedelta(days=1)

    return start <= local <= end


def format_time_for_timezone(moment: datetime, tz_name: str, fmt: str = "HH:mm") -> str:
    """Render an instant as a wall-clock string in the given timezone"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    local = moment.astimezone(get_zone(tz_name))
    if fmt == "HH:mm:ss":
        return local.strftime("%H:%M:%S")
    return local.strftime("%H:%M")
