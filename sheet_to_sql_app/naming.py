"""Identifier normalization for tables and columns."""

import re
from typing import Any, Iterable, List, Optional, Set

from .errors import SchemaConflict
from .type_inference import ColumnType
from .value_coercion import coerce_value


MAX_IDENTIFIER_LENGTH = 63
MAX_SUFFIX_ATTEMPTS = 1000

# Statement keywords the SQL guard refuses anywhere in a query
GUARDED_KEYWORDS = frozenset({
    "insert", "update", "delete", "drop", "alter", "create", "join", "truncate", "merge",
    "attach", "detach", "copy", "pragma", "grant", "revoke", "export", "import", "install",
    "load", "call", "union", "intersect", "except", "set", "reset", "checkpoint", "vacuum",
    "use", "summarize", "describe", "show", "table", "pivot", "unpivot",
})

RESERVED_WORDS = {
    "all", "and", "any", "as", "asc", "between", "by", "case", "cast", "check",
    "column", "create", "default", "delete", "desc", "distinct", "drop", "else",
    "end", "except", "false", "from", "grant", "group", "having", "in", "insert",
    "intersect", "into", "is", "join", "like", "limit", "not", "null", "offset",
    "on", "or", "order", "over", "select", "table", "then", "to", "true", "union",
    "update", "using", "when", "where", "window", "with",
} | GUARDED_KEYWORDS

# Canonical names for common spreadsheet headers, matched against the normalized name
COLUMN_ALIASES = [
    ("visit_date", re.compile(r"^(date_of_visit|visit_(date|dt|day|on)|visited_on|date_visited)$")),
    ("date_of_birth", re.compile(r"^(dob|d_o_b|birth_?date|date_of_birth)$")),
    ("patient_name", re.compile(r"^(patient_?name|name_of_(the_)?patient|patient_full_name)$")),
    ("patient_id", re.compile(r"^(mrn|patient_?id|patient_(no|num|number)|reg(istration)?_no|uhid)$")),
    ("gender", re.compile(r"^(sex|gender|m_f)$")),
    ("age", re.compile(r"^age(_in)?(_yrs?|_years?)?$")),
    ("phone", re.compile(r"^(phone|mobile|contact)(_no|_num|_number)?$")),
]


def normalize_identifier(raw: Any) -> str:
    """Lower-case snake form with only [a-z0-9_]; may return an empty string."""
    text = coerce_value(raw, ColumnType.TEXT) or ""
    text = re.sub(r"[^0-9a-z_]+", "_", text.strip().lower())
    return re.sub(r"_+", "_", text).strip("_")


def canonical_alias(name: str) -> Optional[str]:
    for canonical, pattern in COLUMN_ALIASES:
        if pattern.match(name):
            return canonical
    return None


def unique_name(base: str, taken: Set[str], max_length: int = MAX_IDENTIFIER_LENGTH) -> str:
    """Truncate ``base`` and append ``_2``, ``_3``, ... until it is not in ``taken``."""
    candidate = base[:max_length]
    if candidate not in taken:
        return candidate
    for number in range(2, MAX_SUFFIX_ATTEMPTS + 2):
        suffix = f"_{number}"
        candidate = base[:max_length - len(suffix)] + suffix
        if candidate not in taken:
            return candidate
    raise SchemaConflict(base, f"no unique name after {MAX_SUFFIX_ATTEMPTS} attempts")


def normalize_column_names(headers: Iterable[Any]) -> List[str]:
    names: List[str] = []
    taken: Set[str] = set()
    for index, header in enumerate(headers, start=1):
        base = normalize_identifier(header)
        if not base or base in RESERVED_WORDS:
            base = f"col_{index}"
        elif base[0].isdigit():
            base = f"col_{base}"
        else:
            alias = canonical_alias(base)
            if alias and alias not in taken:
                base = alias
        name = unique_name(base, taken)
        taken.add(name)
        names.append(name)
    return names


def make_table_name(sheet_name: Any, taken: Set[str]) -> str:
    """Safe, unique table name for a sheet."""
    base = normalize_identifier(sheet_name) or "sheet"
    if base[0].isdigit() or base in RESERVED_WORDS:
        base = f"t_{base}"
    try:
        return unique_name(base, taken)
    except SchemaConflict as exc:
        raise SchemaConflict(str(sheet_name), exc.reason, sheet_name=str(sheet_name)) from exc


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'
