"""
SQL Guard
=========

Turns an untrusted, model-generated SQL string into a single-table,
bounded SELECT:

1. strip markdown fences and comments
2. reject anything that is not a lone SELECT (writes, DDL, JOINs,
   multiple statements, set operations, subqueries, file readers,
   dollar-quoted and escape strings)
3. replace the whole top-level FROM segment with the approved table
4. append ``LIMIT <cap>`` to non-aggregate queries, or replace a LIMIT
   that is not a plain integer within the cap

This is a constrained rewrite, not a parser. It only holds while every
question targets exactly one table; multi-table queries need a real
parser-based validator instead.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .errors import RejectedStatement
from .naming import GUARDED_KEYWORDS, quote_identifier

logger = logging.getLogger(__name__)

DEFAULT_ROW_LIMIT = 100

_FENCE_RE = re.compile(r"```(?:sql)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)
_LITERAL_OR_COMMENT_RE = re.compile(
    r"('(?:[^']|'')*'|\"(?:[^\"]|\"\")*\")|(--[^\n]*|/\*.*?(?:\*/|$))",
    re.DOTALL,
)
_LITERAL_RE = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"")

# Quoting forms the literal masker does not understand
_DOLLAR_QUOTE_RE = re.compile(r"\$\w*\$")
_ESCAPE_STRING_RE = re.compile(r"(?<![\w'\"])[eE]'")

_FORBIDDEN_RE = re.compile(
    r"\b(" + "|".join(sorted(GUARDED_KEYWORDS)) + r")\b",
    re.IGNORECASE,
)
_FILE_FUNCTION_RE = re.compile(
    r"\b(read_\w+|glob|query|query_table|sniff_csv|parquet_\w+|getenv)\s*\(",
    re.IGNORECASE,
)
_SELECT_RE = re.compile(r"\bSELECT\b", re.IGNORECASE)
_FROM_RE = re.compile(r"\bFROM\b", re.IGNORECASE)
_CLAUSE_RE = re.compile(
    r"\b(WHERE|GROUP\s+BY|HAVING|QUALIFY|WINDOW|ORDER\s+BY|LIMIT|OFFSET)\b",
    re.IGNORECASE,
)
_AGGREGATE_CALL_RE = re.compile(r"\b(COUNT|SUM|AVG|MIN|MAX)\s*\(", re.IGNORECASE)
_GROUP_BY_RE = re.compile(r"\bGROUP\s+BY\b", re.IGNORECASE)
_WINDOW_TAIL_RE = re.compile(r"\s*(FILTER\s*\([^()]*\)\s*)?OVER\b", re.IGNORECASE)
_LIMIT_RE = re.compile(r"\bLIMIT\b", re.IGNORECASE)
_OFFSET_RE = re.compile(r"\bOFFSET\b", re.IGNORECASE)
_PLAIN_INTEGER_RE = re.compile(r"\s*(\d+)\s*")
_ALIAS_RE = re.compile(r'^\s*(?:"(?:[^"]|"")*"|[\w.]+)\s+(?:AS\s+)?([A-Za-z_]\w*)\s*$', re.IGNORECASE)

_ALIAS_STOPWORDS = {"where", "group", "having", "order", "limit", "offset", "as", "on", "using"}

# Functions whose argument syntax uses FROM without reading a table
_FROM_ARGUMENT_FUNCTIONS = {"extract", "trim", "substring", "overlay"}


@dataclass
class SanitizedQuery:
    sql: str
    target_table: str
    is_aggregate: bool
    row_limit: Optional[int]


def strip_fences(sql: str) -> str:
    match = _FENCE_RE.search(sql)
    return match.group(1) if match else sql


def strip_comments(sql: str) -> str:
    """Remove -- and /* */ comments, leaving string literals untouched."""
    def replacer(match: re.Match) -> str:
        return match.group(1) if match.group(1) is not None else " "

    return _LITERAL_OR_COMMENT_RE.sub(replacer, sql)


def mask_literals(sql: str) -> str:
    """Blank out the inside of quoted strings/identifiers, keeping offsets aligned."""
    def replacer(match: re.Match) -> str:
        text = match.group(0)
        return text[0] + " " * (len(text) - 2) + text[-1]

    return _LITERAL_RE.sub(replacer, sql)


def _depths(masked: str) -> List[int]:
    depths = []
    depth = 0
    for char in masked:
        if char == "(":
            depth += 1
        depths.append(depth)
        if char == ")":
            depth = max(depth - 1, 0)
    return depths


def _first_top_level(pattern: re.Pattern, masked: str, depths: List[int], start: int = 0) -> Optional[re.Match]:
    for match in pattern.finditer(masked, start):
        if depths[match.start()] == 0:
            return match
    return None


def _enclosing_call(masked: str, position: int) -> Optional[str]:
    """Name of the function whose parentheses enclose ``position``, if any."""
    depth = 0
    for index in range(position - 1, -1, -1):
        char = masked[index]
        if char == ")":
            depth += 1
        elif char == "(":
            if depth == 0:
                word = re.search(r"(\w+)\s*$", masked[:index])
                return word.group(1).lower() if word else None
            depth -= 1
    return None


def _matching_paren(masked: str, open_index: int) -> Optional[int]:
    depth = 0
    for index in range(open_index, len(masked)):
        if masked[index] == "(":
            depth += 1
        elif masked[index] == ")":
            depth -= 1
            if depth == 0:
                return index
    return None


def _check_allowed(masked: str, sql: str) -> None:
    if not masked.strip():
        raise RejectedStatement("no SQL statement was generated", sql)
    if not re.match(r"^\s*SELECT\b", masked, re.IGNORECASE):
        raise RejectedStatement("only SELECT statements can be run", sql)
    if _DOLLAR_QUOTE_RE.search(masked) or _ESCAPE_STRING_RE.search(masked):
        raise RejectedStatement("dollar-quoted and escape strings are not allowed", sql)
    if ";" in masked:
        raise RejectedStatement("multiple statements are not allowed", sql)
    forbidden = _FORBIDDEN_RE.search(masked)
    if forbidden:
        raise RejectedStatement(f"'{forbidden.group(1).upper()}' is not allowed", sql)
    if len(_SELECT_RE.findall(masked)) > 1:
        raise RejectedStatement("subqueries are not supported", sql)
    depths = _depths(masked)
    for match in _FROM_RE.finditer(masked):
        if depths[match.start()] > 0 and _enclosing_call(masked, match.start()) not in _FROM_ARGUMENT_FUNCTIONS:
            raise RejectedStatement("subqueries are not supported", sql)
    if _FILE_FUNCTION_RE.search(masked):
        raise RejectedStatement("reading files or other tables is not allowed", sql)


def _rewrite_from(sql: str, table_ref: str) -> str:
    masked = mask_literals(sql)
    depths = _depths(masked)
    from_match = _first_top_level(_FROM_RE, masked, depths)

    if from_match is None:
        # No FROM at all: insert one before the first clause keyword
        clause = _first_top_level(_CLAUSE_RE, masked, depths)
        cut = clause.start() if clause else len(sql)
        parts = [sql[:cut].strip(), f"FROM {table_ref}", sql[cut:].strip()]
        return " ".join(part for part in parts if part)

    clause = _first_top_level(_CLAUSE_RE, masked, depths, from_match.end())
    segment_end = clause.start() if clause else len(sql)
    segment = sql[from_match.end():segment_end]

    replacement = f"FROM {table_ref}"
    alias = _ALIAS_RE.match(segment)
    if alias and alias.group(1).lower() not in _ALIAS_STOPWORDS:
        replacement += f" AS {alias.group(1)}"

    parts = [sql[:from_match.start()].rstrip(), replacement, sql[segment_end:].strip()]
    return " ".join(part for part in parts if part)


def is_aggregate_query(sql: str) -> bool:
    """GROUP BY, or an aggregate call that is not a window function."""
    masked = mask_literals(sql)
    if _first_top_level(_GROUP_BY_RE, masked, _depths(masked)):
        return True
    for match in _AGGREGATE_CALL_RE.finditer(masked):
        close = _matching_paren(masked, match.end() - 1)
        if close is None or not _WINDOW_TAIL_RE.match(masked, close + 1):
            return True
    return False


def _apply_limit(sql: str, is_aggregate: bool, max_rows: int) -> Tuple[str, Optional[int]]:
    masked = mask_literals(sql)
    depths = _depths(masked)
    limit = _first_top_level(_LIMIT_RE, masked, depths)

    if limit is None:
        if is_aggregate:
            return sql, None
        return f"{sql} LIMIT {max_rows}", max_rows

    offset = _first_top_level(_OFFSET_RE, masked, depths, limit.end())
    end = offset.start() if offset else len(sql)
    plain = _PLAIN_INTEGER_RE.fullmatch(sql[limit.end():end])
    if plain and (is_aggregate or int(plain.group(1)) <= max_rows):
        return sql, int(plain.group(1))
    if is_aggregate:
        return sql, None

    # ALL, percentages, expressions and oversized values all become the cap
    clamped = f"{sql[:limit.end()]} {max_rows}"
    rest = sql[end:].strip()
    return (f"{clamped} {rest}" if rest else clamped), max_rows


def sanitize(raw_sql: str, approved_table: str, max_rows: int = DEFAULT_ROW_LIMIT) -> SanitizedQuery:
    """Make ``raw_sql`` a bounded SELECT over ``approved_table`` or raise RejectedStatement."""
    sql = strip_comments(strip_fences(raw_sql or "")).strip()
    sql = re.sub(r"\s*;\s*$", "", sql)
    _check_allowed(mask_literals(sql), raw_sql)

    sql = _rewrite_from(sql, quote_identifier(approved_table))
    is_aggregate = is_aggregate_query(sql)
    sql, row_limit = _apply_limit(sql, is_aggregate, max_rows)

    logger.info(f"Sanitized SQL for {approved_table}: {sql}")
    return SanitizedQuery(
        sql=sql,
        target_table=approved_table,
        is_aggregate=is_aggregate,
        row_limit=row_limit,
    )
