"""Convert raw cells into the storage type of their column."""

import math
from datetime import date, datetime
from typing import Any, Optional, Union

from .type_inference import ColumnType, is_blank, parse_number, parse_temporal


StoredValue = Optional[Union[float, datetime, str]]


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_blank(value):
        return None
    return str(value)


def coerce_value(raw: Any, target_type: ColumnType) -> StoredValue:
    """
    Coerce one cell; unparseable values become None.

    Inference only looks at a sample, so stragglers in the full column are
    expected here and must never reach the store as the wrong type.
    """
    if target_type == ColumnType.NUMERIC:
        return parse_number(raw)
    if target_type == ColumnType.TEMPORAL:
        return parse_temporal(raw, allow_serial=True)
    return _to_text(raw)
