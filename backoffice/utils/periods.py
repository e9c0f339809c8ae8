"""
Date and money helpers shared by the ledger, sales and report queries.
"""
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

CENTS = Decimal("0.01")


def quantize_money(value) -> Decimal:
    """Round to cents, half up"""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def day_bounds(start: Optional[date], end: Optional[date]) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Turn an inclusive [start, end] date range into UTC datetimes [lower, upper).
    The upper bound is midnight after `end` so the whole end day is included.
    """
    lower = datetime.combine(start, time.min, tzinfo=timezone.utc) if start else None
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc) if end else None
    return lower, upper


def as_date(value) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, str):
        return datetime.fromisoformat(value[:10]).date()
    return value


def period_start(day: date, group_by: str) -> date:
    """Bucket key: the day itself, the Monday of its week, or the 1st of its month"""
    if group_by == "week":
        return day - timedelta(days=day.weekday())
    if group_by == "month":
        return day.replace(day=1)
    return day


def format_quantity(value) -> str:
    """Quantity without trailing zeros or exponent: 15.000 -> 15, 2.500 -> 2.5"""
    return format(Decimal(str(value)).normalize(), "f")
