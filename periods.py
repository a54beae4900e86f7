import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings

MONTH_PATTERN = re.compile(r"\d{4}-\d{2}", re.ASCII)


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def month_token(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - date.resolution
    return date(year, month + 1, 1) - date.resolution


def resolve_month(token: Optional[str]) -> Period:
    """Parse a ``YYYY-MM`` token into the full calendar month it names."""
    if not token or not MONTH_PATTERN.fullmatch(token):
        raise ValueError("Valid month is required (YYYY-MM)")
    year = int(token[:4])
    month = int(token[5:])
    if not 1 <= month <= 12 or year < 1:
        raise ValueError(f"Month out of range: {token}")
    return Period(token, date(year, month, 1), month_end(year, month))


def month_to_date(period: Period, *, today: Optional[date] = None) -> Period:
    """Clip the current month to today; other months keep their full range."""
    today = today or local_today()
    if period.start <= today <= period.end:
        return Period(period.slug, period.start, today)
    return period


def previous_month(today: date) -> str:
    first_this = today.replace(day=1)
    return month_token(first_this - date.resolution)
