"""
Locale normalization for statement values.

Pure functions turning free-text cells into canonical values:
- Numbers in Brazilian (1.234,56) or US (1,234.56) notation
- Dates in day-first, ISO and two-digit-year forms
- Spreadsheet date serials (days since 1899-12-30)
"""

import math
import re
import unicodedata
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

SERIAL_EPOCH = date(1899, 12, 30)
MIN_SERIAL = 1
MAX_SERIAL = 100_000
MIN_YEAR = 1900
MAX_YEAR = 2100
TWO_DIGIT_YEAR_PIVOT = 50

CURRENCY_PATTERN = re.compile(r"R\$|US\$|\$|€|£|¥", re.IGNORECASE)
WHITESPACE_PATTERN = re.compile(r"\s+")
PLAIN_NUMBER_PATTERN = re.compile(r"^\d+(\.\d+)?$")
SERIAL_PATTERN = re.compile(r"^\d+([.,]\d+)?$")
AMOUNT_SHAPE_PATTERN = re.compile(r"^[-+(]?\s*(R\$|\$|€|£)?\s*-?\d[\d.,]*\)?\s*-?$", re.IGNORECASE)
DATE_PREFIX_PATTERN = re.compile(
    r"^(\d{1,2}[/.\-]\d{1,2}[/.\-]\d{2,4}|\d{4}[/\-]\d{1,2}[/\-]\d{1,2})"
)

# (pattern, group order) tried in sequence; "year2" is a two-digit year
DATE_FORMATS = (
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), ("day", "month", "year")),
    (re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$"), ("day", "month", "year")),
    (re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$"), ("day", "month", "year")),
    (re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$"), ("year", "month", "day")),
    (re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$"), ("year", "month", "day")),
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2})$"), ("day", "month", "year2")),
    (re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{2})$"), ("day", "month", "year2")),
)


def normalize_text(value: Any) -> str:
    """Lowercase, strip diacritics and surrounding whitespace."""
    if value is None:
        return ""
    decomposed = unicodedata.normalize("NFD", str(value))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.lower().strip()


def cell_to_text(value: Any) -> str:
    """Render a decoded cell as text for serialization and display."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.time() == datetime.min.time():
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float):
        if not math.isfinite(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value).strip()


def excel_serial_to_date(serial: float) -> Optional[date]:
    """Convert a spreadsheet serial to a date, ignoring the time fraction."""
    if isinstance(serial, bool) or not math.isfinite(serial):
        return None
    if serial < MIN_SERIAL or serial > MAX_SERIAL:
        return None
    return SERIAL_EPOCH + timedelta(days=int(serial))


def _resolve_separators(text: str) -> Optional[str]:
    """Rewrite a localized digit string using '.' as the only decimal mark."""
    last_comma = text.rfind(",")
    last_dot = text.rfind(".")

    if last_comma == -1 and last_dot == -1:
        return text

    if last_comma != -1 and last_dot != -1:
        decimal_sep, thousands_sep = (",", ".") if last_comma > last_dot else (".", ",")
        integer, _, fraction = text.rpartition(decimal_sep)
        if decimal_sep in integer:
            return None
        return f"{integer.replace(thousands_sep, '')}.{fraction}"

    separator = "," if last_comma != -1 else "."
    parts = text.split(separator)
    if len(parts) > 2:
        # 1.234.567 or 1,234,567
        if all(len(part) == 3 for part in parts[1:]):
            return "".join(parts)
        return None

    integer, fraction = parts
    if len(fraction) == 3 and integer and integer.lstrip("0") and len(integer) <= 3:
        # 1.234 / 1,234: a lone separator before exactly three digits groups thousands
        return integer + fraction
    return f"{integer}.{fraction}"


def parse_localized_number(value: Any) -> Optional[Decimal]:
    """
    Parse a number written in Brazilian or US notation.

    Args:
        value: Cell value (text or native number).

    Returns:
        Decimal value, or None for empty, alphabetic or malformed input.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (date, datetime)):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(repr(value)) if math.isfinite(value) else None

    text = str(value).strip()
    if not text or not any(ch.isdigit() for ch in text):
        return None

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    text = CURRENCY_PATTERN.sub("", text)
    text = WHITESPACE_PATTERN.sub("", text)

    if text.startswith("-"):
        negative = True
        text = text[1:]
    elif text.startswith("+"):
        text = text[1:]
    if text.endswith("-"):
        negative = True
        text = text[:-1]

    resolved = _resolve_separators(text)
    if resolved is None or not PLAIN_NUMBER_PATTERN.match(resolved):
        return None

    try:
        number = Decimal(resolved)
    except InvalidOperation:
        return None
    return -number if negative else number


def _build_date(year: int, month: int, day: int) -> Optional[date]:
    if not (MIN_YEAR <= year <= MAX_YEAR):
        return None
    try:
        built = date(year, month, day)
    except ValueError:
        return None
    # Round-trip check so 31/02 never rolls over into March
    if (built.year, built.month, built.day) != (year, month, day):
        return None
    return built


def parse_date(value: Any, format_hint: Optional[str] = None) -> Optional[date]:
    """
    Parse a statement date.

    Accepts native dates, spreadsheet serials and text in the common
    statement formats. Day-first is assumed for ambiguous text unless
    ``format_hint`` starts with a month token (e.g. ``MM/DD/YYYY``).

    Args:
        value: Cell value.
        format_hint: Optional date format reported by the column analysis.

    Returns:
        The calendar date, or None when the value is absent or invalid.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float, Decimal)):
        return excel_serial_to_date(float(value))

    text = str(value).strip()
    if not text:
        return None

    compact = WHITESPACE_PATTERN.sub("", text)
    if SERIAL_PATTERN.match(compact):
        serial = excel_serial_to_date(float(compact.replace(",", ".")))
        if serial is not None:
            return serial

    prefix = DATE_PREFIX_PATTERN.match(text)
    # Drop trailing time components such as 10:30:00
    text = prefix.group(1) if prefix else compact

    month_first = bool(format_hint) and format_hint.strip().upper().startswith("MM")

    for pattern, order in DATE_FORMATS:
        match = pattern.match(text)
        if not match:
            continue
        parts = {}
        for key, raw in zip(order, match.groups()):
            number = int(raw)
            if key == "year2":
                parts["year"] = 1900 + number if number >= TWO_DIGIT_YEAR_PIVOT else 2000 + number
            else:
                parts[key] = number
        if month_first and order[0] == "day":
            parts["day"], parts["month"] = parts["month"], parts["day"]
        parsed = _build_date(parts["year"], parts["month"], parts["day"])
        if parsed is not None:
            return parsed

    return None


def is_date_like(value: Any) -> bool:
    """Whether a cell looks like a date (native, serial or text)."""
    if isinstance(value, (date, datetime)):
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return MIN_SERIAL <= value <= MAX_SERIAL
    text = str(value or "").strip()
    if not text:
        return False
    return bool(DATE_PREFIX_PATTERN.match(text))


def is_amount_like(value: Any) -> bool:
    """Whether a cell looks like a monetary amount."""
    if isinstance(value, bool) or value is None:
        return False
    if isinstance(value, (int, float, Decimal)):
        return True
    text = str(value).strip()
    if not text or is_date_like(text):
        return False
    return bool(AMOUNT_SHAPE_PATTERN.match(text)) and parse_localized_number(text) is not None
