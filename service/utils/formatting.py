"""Formatting and numeric helpers for dashboard display values."""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from config import logger

EMPTY_COUNT = "-"
DISPLAY_DATETIME_FORMAT = "%m/%d/%Y, %I:%M %p"


def _to_decimal(x: Any) -> Decimal | None:
    """Parse a value into a Decimal, or None when it is empty or not numeric."""
    if x is None or x == "" or isinstance(x, bool):
        return None
    if isinstance(x, Decimal):
        return x
    try:
        d = Decimal(str(x).replace(",", "").strip())
    except InvalidOperation:
        logger.warning("Unable to parse numeric value", raw_value=x)
        return None
    return d if d.is_finite() else None


def _grouped(d: Decimal, places: int) -> str:
    quantum = Decimal(1).scaleb(-places)
    rounded = d.quantize(quantum, rounding=ROUND_HALF_UP)
    if rounded == 0:
        rounded = abs(rounded)
    return f"{rounded:,.{places}f}"


def format_count(x: Any) -> str:
    """Format a tree figure: whole number with thousands separators, zero as ``-``."""
    d = _to_decimal(x)
    if d is None:
        return "" if x in (None, "") else str(x)
    if d == 0:
        return EMPTY_COUNT
    return _grouped(d, 0)


def format_money(x: Any) -> str:
    """Format a number with thousands separators and 2 decimals.

    Returns empty string for empty input; returns original string if not numeric.
    """
    d = _to_decimal(x)
    if d is None:
        return "" if x in (None, "") else str(x)
    return _grouped(d, 2)


def format_plain_amount(x: Any) -> str:
    """Format an optional report amount; ``None`` renders as an empty cell."""
    d = _to_decimal(x)
    if d is None:
        return "" if x in (None, "") else str(x)
    if d == d.to_integral_value():
        return _grouped(d, 0)
    # Up to three fraction digits, trailing zeros dropped.
    text = _grouped(d, 3).rstrip("0")
    return text.rstrip(".")


def fmt_datetime(value: Any) -> str:
    """Render an ISO date/datetime as ``MM/DD/YYYY, hh:mm AM``; unparseable input is returned as-is."""
    if value is None or value == "":
        return ""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return str(value)
    return parsed.strftime(DISPLAY_DATETIME_FORMAT)

