"""Date manipulation utilities"""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo


def month_key(day: date) -> str:
    """Calendar month of a date as "YYYY-MM" """
    return f"{day.year:04d}-{day.month:02d}"


def parse_month_key(month: str) -> tuple[int, int]:
    """Split "YYYY-MM" into (year, month); raises ValueError on bad input"""
    year_part, _, month_part = month.partition("-")
    year, month_num = int(year_part), int(month_part)
    if not 1 <= month_num <= 12:
        raise ValueError(f"Invalid month: {month}")
    return year, month_num


def local_today(now: datetime, tz_name: str) -> date:
    """Date of `now` in the given timezone; naive datetimes are taken as UTC"""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(tz_name)).date()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def end_of_day(day: date, tz_name: str = "UTC") -> datetime:
    """Last microsecond of `day` in the given timezone"""
    return datetime.combine(day, time.max, tzinfo=ZoneInfo(tz_name))
