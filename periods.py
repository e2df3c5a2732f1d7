from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from config import Settings, get_settings
from errors import ValidationError
from models import CycleType

DateInput = Union[date, datetime, str, None]


@dataclass(frozen=True)
class Window:
    start: datetime
    end: datetime


def local_now(settings: Optional[Settings] = None) -> datetime:
    settings = settings or get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).replace(tzinfo=None)


def local_today(settings: Optional[Settings] = None) -> date:
    return local_now(settings).date()


def parse_date(value: DateInput, label: str = "date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Invalid {label} provided.")
    text = value.strip()
    for fmt in ("%Y-%m-%d", "%d.%m.%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError as exc:
        raise ValidationError(f"Invalid {label} provided.") from exc


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: date, months: int) -> date:
    """
    Calendar month addition that keeps the day-of-month and lets it overflow:
    Jan 31 + 1 month lands on Mar 2 (Mar 3 outside leap years), never Feb 28/29.
    """
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    return date(year, month, 1) + timedelta(days=base.day - 1)


def resolve_end_date(
    start_date: DateInput,
    cycle_type: Union[CycleType, str, None],
    custom_end_date: DateInput = None,
) -> date:
    start = parse_date(start_date, "start date")
    try:
        cycle = CycleType(cycle_type)
    except ValueError as exc:
        raise ValidationError("Invalid cycle type.") from exc

    if cycle == CycleType.monthly:
        return add_months(start, 1) - timedelta(days=1)
    if cycle == CycleType.weekly:
        return start + timedelta(days=6)
    if custom_end_date is None or custom_end_date == "":
        raise ValidationError("Custom end date is required for 'custom' cycle type.")
    return parse_date(custom_end_date, "custom end date")


def day_bounds(start: date, end: date) -> Window:
    """Datetime window covering every instant of the inclusive date range."""
    return Window(
        datetime.combine(start, time.min),
        datetime.combine(end, time.max),
    )


def last_n_days_window(days: int, now: datetime) -> Window:
    first_day = now.date() - timedelta(days=days)
    return Window(datetime.combine(first_day, time.min), now)


def month_to_date_window(now: datetime) -> Window:
    return Window(datetime.combine(now.date().replace(day=1), time.min), now)
