import re
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

DATE_KEY_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})", re.ASCII)

# Index matches date.weekday(): Monday=0
DAY_KEYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]
MONTH_KEYS = ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]


def parse_calendar_day(value: str) -> Optional[date]:
    """
    Parse a strict YYYY-MM-DD string.
    Returns None for anything else, including impossible dates like 2024-02-30.
    """
    if not isinstance(value, str):
        return None
    match = DATE_KEY_RE.fullmatch(value)
    if not match:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        parsed = date(year, month, day)
    except ValueError:
        return None
    # Round-trip guard: components must survive construction unchanged
    if (parsed.year, parsed.month, parsed.day) != (year, month, day):
        return None
    return parsed


def format_calendar_day(day: date) -> str:
    return day.isoformat()


def add_days(day: date, days: int) -> date:
    return day + timedelta(days=days)


def next_calendar_day(day: date) -> date:
    return add_days(day, 1)


def add_days_to_date_key(date_key: str, days: int) -> str:
    """
    Shift a YYYY-MM-DD key by a number of days.
    Raises ValueError for a bad key or a result outside 0001-01-01..9999-12-31.
    """
    day = parse_calendar_day(date_key)
    if day is None:
        raise ValueError(f'Invalid date key "{date_key}". Expected YYYY-MM-DD.')
    try:
        return format_calendar_day(add_days(day, days))
    except OverflowError as e:
        raise ValueError(f'Date key "{date_key}" shifted by {days} days is out of range.') from e


def day_of_week(day: date) -> str:
    return DAY_KEYS[day.weekday()]


def day_of_month(day: date) -> int:
    return day.day


def month_key(day: date) -> str:
    return MONTH_KEYS[day.month - 1]


def end_of_month(year: int, month: int) -> date:
    """Last calendar day of the given month (month is 1-12)."""
    if month == 12:
        return date(year, 12, 31)
    return date(year, month + 1, 1) - timedelta(days=1)


def render_pattern(day: date, pattern: str) -> str:
    """Substitute YYYY, MM and DD tokens; everything else is left as-is."""
    return (
        pattern.replace("YYYY", f"{day.year:04d}")
        .replace("MM", f"{day.month:02d}")
        .replace("DD", f"{day.day:02d}")
    )


def today_date_key(tz_name: Optional[str] = None) -> str:
    """
    Today's date key. Uses tz_name (IANA) when given, local time otherwise.
    Only the HTTP boundary should call this; the core takes dates explicitly.
    """
    now = datetime.now(ZoneInfo(tz_name)) if tz_name else datetime.now()
    return format_calendar_day(now.date())
