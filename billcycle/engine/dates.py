"""
Calendar and Money Helpers

DESIGN DECISION: Every date the engine touches is a calendar day
(datetime.date). Timestamps are truncated to their day part as written,
never converted between timezones, so a charge recorded at 23:30 stays on
the day the user saw.

Rounding reproduces the stored application's behaviour exactly: halves
round toward positive infinity (2.345 -> 2.35, -2.345 -> -2.34). Changing
this would move existing statement totals by a cent.
"""

import calendar
import math
from datetime import date, datetime
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Optional, Union

import structlog
from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta

logger = structlog.get_logger(__name__)

Number = Union[int, float, Decimal, str]

CENT = Decimal("0.01")
ZERO = Decimal("0")


# =============================================================================
# DAYS AND MONTHS
# =============================================================================

def parse_day(value) -> Optional[date]:
    """
    Coerce a stored date value into a calendar day.

    Accepts date, datetime and ISO-8601 strings (date or datetime).
    Returns None for anything unparsable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return isoparse(text).date()
        except (ValueError, OverflowError):
            logger.warning("unparsable_date", value=text)
            return None
    return None


def month_str(day: date) -> str:
    """Format the month of ``day`` as YYYY-MM."""
    return f"{day.year:04d}-{day.month:02d}"


def parse_month(value: str) -> date:
    """
    Parse a YYYY-MM key into the first day of that month.

    Raises ValueError for malformed keys.
    """
    try:
        year_text, month_text = value.split("-")
        return date(int(year_text), int(month_text), 1)
    except (AttributeError, TypeError, ValueError) as e:
        raise ValueError(f"Invalid month key: {value!r}") from e


def start_of_month(day: date) -> date:
    return day.replace(day=1)


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def end_of_month(day: date) -> date:
    return day.replace(day=last_day_of_month(day.year, day.month))


def clamp_day(year: int, month: int, day: int) -> date:
    """Day ``day`` of the month, or the month's last day if it is shorter."""
    return date(year, month, max(1, min(day, last_day_of_month(year, month))))


def add_months(day: date, months: int) -> date:
    """Shift by whole months, clamping to the last day of short months."""
    return day + relativedelta(months=months)


def shift_month(key: str, months: int) -> str:
    """Shift a YYYY-MM key by whole months."""
    return month_str(add_months(parse_month(key), months))


def month_difference(start: date, end: date) -> int:
    """Calendar months from ``start`` to ``end``, ignoring the day of month."""
    return (end.year - start.year) * 12 + (end.month - start.month)


# =============================================================================
# MONEY
# =============================================================================

def to_decimal(value, default: Decimal = ZERO) -> Decimal:
    """
    Coerce a stored amount into a finite Decimal.

    Non-numeric, NaN and infinite values fall back to ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        logger.warning("unparsable_amount", value=str(value))
        return default
    if not result.is_finite():
        logger.warning("non_finite_amount", value=str(value))
        return default
    return result


def is_finite_number(value) -> bool:
    """True for finite int/float/Decimal values (bools excluded)."""
    if isinstance(value, bool):
        return False
    if isinstance(value, Decimal):
        return value.is_finite()
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    return False


def round_currency(amount: Number) -> Decimal:
    """Round to cents, halves toward positive infinity."""
    value = to_decimal(amount)
    return ((value * 100 + Decimal("0.5")).to_integral_value(rounding=ROUND_FLOOR) / 100).quantize(CENT)


def round_half_up(amount: Number) -> int:
    """Round to an integer, halves toward positive infinity."""
    value = to_decimal(amount)
    return int((value + Decimal("0.5")).to_integral_value(rounding=ROUND_FLOOR))
