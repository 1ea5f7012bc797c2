"""
Column type inference for spreadsheet data.

A column is typed by unanimous vote over its non-blank samples: it becomes
``temporal`` only when every sample looks like a date, ``numeric`` only when
every sample parses as a finite number, and ``text`` otherwise. A single
stray token such as "Total" or "N/A" keeps the whole column textual, so no
value can fail a typed INSERT later on.

Parsing is pinned to one locale so results do not drift between datasets:
``.`` is the decimal separator, ``,`` groups thousands, and slash/dash dates
are read day-first (``DD/MM/YYYY``).
"""

import math
import numbers
import re
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, Optional

import pandas as pd


class ColumnType(str, Enum):
    NUMERIC = "numeric"
    TEMPORAL = "temporal"
    TEXT = "text"

    @property
    def sql_type(self) -> str:
        return _SQL_TYPES[self]


_SQL_TYPES = {
    ColumnType.NUMERIC: "DOUBLE",
    ColumnType.TEMPORAL: "TIMESTAMP",
    ColumnType.TEXT: "VARCHAR",
}

_NUMBER_RE = re.compile(
    r"^[+-]?(?:(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$"
)
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}(?:[ T].*)?$")

# Day-first for ambiguous numeric dates
_DATE_FORMATS = (
    "%Y/%m/%d",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%d/%m/%Y",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y %H:%M:%S",
    "%d-%m-%Y",
    "%d-%m-%Y %H:%M",
    "%d-%m-%Y %H:%M:%S",
    "%d.%m.%Y",
    "%d-%b-%Y",
    "%d-%b-%y",
    "%d %b %Y",
    "%d %B %Y",
    "%d-%B-%Y",
    "%b %d, %Y",
    "%B %d, %Y",
)

EXCEL_EPOCH = datetime(1899, 12, 30)
# Serials outside this window (1927-05-18 .. 2119-01-10) are treated as plain numbers
SERIAL_MIN = 10000
SERIAL_MAX = 80000

DATE_NAME_TOKENS = {"date", "dob", "dt", "timestamp", "datetime"}


def is_blank(value: Any) -> bool:
    """True for empty cells: None, NaN/NaT and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def parse_number(value: Any) -> Optional[float]:
    """Parse a cell as a finite float, or return None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, numbers.Real):
        number = float(value)
        return number if math.isfinite(number) else None
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not _NUMBER_RE.match(text):
        return None
    number = float(text.replace(",", ""))
    return number if math.isfinite(number) else None


def _naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_date_text(text: str) -> Optional[datetime]:
    text = text.strip()
    if not text:
        return None
    if _ISO_DATE_RE.match(text):
        try:
            return _naive(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_serial(value: Any) -> Optional[datetime]:
    """Convert a spreadsheet date serial (days since 1899-12-30) to a datetime."""
    number = parse_number(value) if not isinstance(value, str) else None
    if number is None or not SERIAL_MIN <= number <= SERIAL_MAX:
        return None
    return EXCEL_EPOCH + timedelta(days=number)


def parse_temporal(value: Any, allow_serial: bool = True) -> Optional[datetime]:
    """Parse a cell as a naive datetime, or return None."""
    if is_blank(value):
        return None
    if isinstance(value, pd.Timestamp):
        return _naive(value.to_pydatetime())
    if isinstance(value, datetime):
        return _naive(value)
    if isinstance(value, date):
        return datetime.combine(value, time())
    if isinstance(value, str):
        return parse_date_text(value)
    if allow_serial:
        return parse_serial(value)
    return None


def looks_like_date_name(column_name: Optional[str]) -> bool:
    if not column_name:
        return False
    tokens = re.split(r"[^a-z0-9]+", column_name.lower())
    return any(token in DATE_NAME_TOKENS for token in tokens)


def infer_column_type(samples: Iterable[Any], column_name: Optional[str] = None) -> ColumnType:
    """Classify a column from its samples. Never raises; ambiguity resolves to text."""
    values = [value for value in samples if not is_blank(value)]
    if not values:
        return ColumnType.TEXT

    allow_serial = looks_like_date_name(column_name)
    if all(parse_temporal(value, allow_serial=allow_serial) is not None for value in values):
        return ColumnType.TEMPORAL
    if all(parse_number(value) is not None for value in values):
        return ColumnType.NUMERIC
    return ColumnType.TEXT
