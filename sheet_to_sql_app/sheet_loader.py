"""
Turn one raw sheet grid into a typed table definition plus coerced rows.

Steps: trim blank edges, detect the header row, normalize column names,
drop blank and summary rows, sample each column for type inference and
coerce every retained cell. A sheet that cannot be processed yields an
empty table and an IngestFailure instead of an exception.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional

from .errors import IngestFailure
from .models import ColumnDefinition, Sheet, TableDefinition
from .naming import normalize_column_names
from .type_inference import infer_column_type, is_blank, parse_number, parse_temporal
from .value_coercion import StoredValue, coerce_value

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 500

# A row with at most this share of populated cells counts as mostly empty
MOSTLY_EMPTY_FRACTION = 0.5

HEADER_FILL_RATIO = 0.5
HEADER_TEXT_RATIO = 0.8

SUMMARY_TOKEN_RE = re.compile(
    r"^\s*(grand\s+totals?|sub[\s-]?totals?|totals?|summary|overall)\b",
    re.IGNORECASE,
)


@dataclass
class LoadedSheet:
    table: TableDefinition
    rows: List[List[StoredValue]] = field(default_factory=list)
    error: Optional[IngestFailure] = None

    @property
    def is_empty(self) -> bool:
        return not self.table.columns


def _is_text_token(value: Any) -> bool:
    if is_blank(value):
        return False
    return parse_number(value) is None and parse_temporal(value, allow_serial=False) is None


def trim_grid(rows: List[List[Any]]) -> List[List[Any]]:
    """Drop leading blank rows and trailing blank columns; pad rows to equal width."""
    grid = [list(row) for row in rows]
    while grid and all(is_blank(cell) for cell in grid[0]):
        grid.pop(0)

    width = 0
    for row in grid:
        for index in range(len(row) - 1, -1, -1):
            if not is_blank(row[index]):
                width = max(width, index + 1)
                break
    return [(row + [None] * width)[:width] for row in grid]


def looks_like_header(row: List[Any]) -> bool:
    if not row:
        return False
    populated = [cell for cell in row if not is_blank(cell)]
    if len(populated) / len(row) < HEADER_FILL_RATIO:
        return False
    text_cells = [cell for cell in populated if _is_text_token(cell)]
    if len(text_cells) / len(populated) < HEADER_TEXT_RATIO:
        return False
    keys = [str(cell).strip().lower() for cell in populated]
    return len(set(keys)) == len(keys)


def is_summary_row(row: List[Any]) -> bool:
    """Mostly-empty row carrying a token such as 'Total' or 'Grand Total'."""
    if not row:
        return False
    populated = [cell for cell in row if not is_blank(cell)]
    if len(populated) / len(row) > MOSTLY_EMPTY_FRACTION:
        return False
    return any(isinstance(cell, str) and SUMMARY_TOKEN_RE.match(cell) for cell in populated)


def should_drop_row(row: List[Any]) -> bool:
    if all(is_blank(cell) for cell in row):
        return True
    return is_summary_row(row)


def sample_column(rows: List[List[Any]], index: int, size: int = SAMPLE_SIZE) -> List[Any]:
    """Up to ``size`` non-blank values of one column, spread evenly over the rows."""
    values = [row[index] for row in rows if not is_blank(row[index])]
    if len(values) <= size:
        return values
    if size <= 1:
        return values[:size]
    step = (len(values) - 1) / (size - 1)
    return [values[round(i * step)] for i in range(size)]


def _load(sheet: Sheet, sample_size: int) -> LoadedSheet:
    grid = trim_grid(sheet.rows)
    if not grid or not grid[0]:
        raise ValueError("sheet has no populated cells")

    width = len(grid[0])
    if looks_like_header(grid[0]):
        headers = grid[0]
        body = grid[1:]
    else:
        logger.info(f"Sheet '{sheet.name}' has no header row; using positional column names")
        headers = [None] * width
        body = grid

    names = normalize_column_names(headers)
    kept = [row for row in body if not should_drop_row(row)]
    dropped = len(body) - len(kept)

    columns = []
    for index, name in enumerate(names):
        samples = sample_column(kept, index, sample_size)
        source = None if is_blank(headers[index]) else str(headers[index]).strip()
        columns.append(ColumnDefinition(
            name=name,
            inferred_type=infer_column_type(samples, column_name=name),
            sample_count=len(samples),
            source_header=source,
        ))

    rows = [
        [coerce_value(row[index], col.inferred_type) for index, col in enumerate(columns)]
        for row in kept
    ]
    logger.info(
        f"Loaded sheet '{sheet.name}': {len(columns)} columns, {len(rows)} rows ({dropped} dropped)"
    )
    table = TableDefinition(table_name=None, columns=columns, row_count=len(rows), sheet_name=sheet.name)
    return LoadedSheet(table=table, rows=rows)


def load_sheet(sheet: Sheet, sample_size: int = SAMPLE_SIZE) -> LoadedSheet:
    """Load one sheet; malformed input produces an empty table with an IngestFailure."""
    try:
        return _load(sheet, sample_size)
    except Exception as exc:
        failure = IngestFailure(sheet.name, str(exc))
        logger.warning(failure.message)
        return LoadedSheet(table=TableDefinition(table_name=None, sheet_name=sheet.name), error=failure)
