# backend/formatters.py
"""
Legal document formatters
Currency, dates and spelled-out numbers as they appear in contracts
"""

import math
import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, Optional, Union

from dateutil import parser as date_parser
from num2words import num2words

from errors import InvalidAmountError, InvalidDateError

Number = Union[int, float, Decimal, str]
DateLike = Union[date, datetime, str, int, float]

# Tried in order before dateutil
DATE_LAYOUTS = [
    "%m/%d/%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%Y-%m-%d",
    "%b %d %Y",
    "%B %d %Y",
    "%m-%d-%Y",
    "%m/%d/%y",
]

_ORDINAL_SUFFIX = re.compile(r"(\d)(st|nd|rd|th)\b", re.IGNORECASE)

# Two unrelated defaults; a complete date parses the same under both
_DEFAULT_A = datetime(2000, 1, 1)
_DEFAULT_B = datetime(2001, 2, 2)


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, bool):
        raise InvalidAmountError(f"Invalid currency amount: {value!r}")
    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, (int, float)):
            amount = Decimal(str(value))
        else:
            amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(f"Invalid currency amount: {value!r}") from None
    if not amount.is_finite():
        raise InvalidAmountError(f"Invalid currency amount: {value!r}")
    return amount


# Currency

def format_currency(amount: Number, include_cents: bool = False) -> str:
    """
    Format currency for legal documents

    Example: 100000 -> "$100,000" or "$100,000.00"
    """
    value = _to_decimal(amount)
    quantum = Decimal("0.01") if include_cents else Decimal("1")
    rounded = value.quantize(quantum, rounding=ROUND_HALF_UP)
    sign = "-" if rounded < 0 else ""
    return f"{sign}${abs(rounded):,}"


def parse_currency(currency_string: Union[str, int, float]) -> float:
    """
    Parse currency string to number

    Example: "$100,000" -> 100000.0
    """
    if isinstance(currency_string, (int, float)) and not isinstance(currency_string, bool):
        return float(currency_string)
    cleaned = re.sub(r"[$,\s]", "", str(currency_string))
    try:
        amount = float(cleaned)
    except ValueError:
        raise InvalidAmountError(f"Invalid currency string: {currency_string!r}") from None
    if not math.isfinite(amount):
        raise InvalidAmountError(f"Invalid currency string: {currency_string!r}")
    return amount


# Dates

def parse_flexible_date(date_string: str) -> datetime:
    """
    Parse various date formats

    Supports "1/1/2024", "January 1, 2024", "jan 1 2024", "2024-01-01", ...
    Anything the known layouts miss goes to dateutil, which must find a
    full day, month and year.
    """
    text = _ORDINAL_SUFFIX.sub(r"\1", str(date_string).strip())
    text = re.sub(r"\s+", " ", text)

    for layout in DATE_LAYOUTS:
        try:
            return datetime.strptime(text, layout)
        except ValueError:
            continue

    try:
        # a part missing from the text would come from the default
        first = date_parser.parse(text, default=_DEFAULT_A)
        second = date_parser.parse(text, default=_DEFAULT_B)
    except (ValueError, OverflowError):
        raise InvalidDateError(f"Unable to parse date: {date_string!r}") from None
    if first != second:
        raise InvalidDateError(f"Incomplete date: {date_string!r}")
    return first.replace(tzinfo=None)


def format_legal_date(value: DateLike, include_time: bool = False) -> str:
    """
    Format date for legal documents

    Example: 2024-01-01 -> "January 1, 2024"
    """
    if isinstance(value, bool):
        raise InvalidDateError(f"Invalid date: {value!r}")
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        try:
            moment = datetime.fromtimestamp(value)
        except (OverflowError, OSError, ValueError):
            raise InvalidDateError(f"Invalid date: {value!r}") from None
    elif isinstance(value, str):
        moment = parse_flexible_date(value)
    else:
        raise InvalidDateError(f"Invalid date: {value!r}")

    formatted = f"{moment:%B} {moment.day}, {moment.year}"
    if include_time:
        hour = moment.hour % 12 or 12
        formatted += f" at {hour}:{moment:%M} {moment:%p}"
    return formatted


def get_current_legal_date(clock: Optional[Callable[[], datetime]] = None) -> str:
    return format_legal_date((clock or datetime.now)())


# Numbers

def _capitalize(words: str) -> str:
    return words[:1].upper() + words[1:]


def number_to_words(num: Number) -> str:
    """
    Convert number to words for legal documents

    Fractions are truncated. Example: 100000 -> "One hundred thousand"
    """
    value = _to_decimal(num)
    return _capitalize(num2words(int(value)))


def currency_to_words(amount: Number, currency: str = "Dollars") -> str:
    """
    Convert currency amount to words

    Example: 1500.25 -> "One thousand, five hundred Dollars and Twenty-five Cents"
    """
    value = _to_decimal(amount)
    sign = -1 if value < 0 else 1
    value = abs(value)
    dollars = int(value)
    cents = int(((value - dollars) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents == 100:
        dollars, cents = dollars + 1, 0

    result = f"{number_to_words(sign * dollars)} {currency}"
    if cents > 0:
        result += f" and {number_to_words(cents)} Cents"
    return result
