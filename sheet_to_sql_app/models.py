"""Catalog data model: columns, tables and the catalog itself."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .errors import NoBaseTable, SheetSQLError, UnknownTable
from .type_inference import ColumnType


@dataclass
class ColumnDefinition:
    name: str
    inferred_type: ColumnType
    sample_count: int = 0
    source_header: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.inferred_type.value,
            "sql_type": self.inferred_type.sql_type,
            "sample_count": self.sample_count,
            "source_header": self.source_header,
        }


@dataclass
class TableDefinition:
    table_name: Optional[str]
    columns: List[ColumnDefinition] = field(default_factory=list)
    row_count: int = 0
    sheet_name: Optional[str] = None

    @property
    def column_names(self) -> List[str]:
        return [col.name for col in self.columns]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table_name,
            "sheet": self.sheet_name,
            "row_count": self.row_count,
            "columns": [col.to_dict() for col in self.columns],
        }


def select_base_table(tables: List[TableDefinition]) -> Optional[TableDefinition]:
    """Largest table by row count; the first one wins ties. None when all are empty."""
    base = None
    for table in tables:
        if table.row_count <= 0:
            continue
        if base is None or table.row_count > base.row_count:
            base = table
    return base


@dataclass
class Catalog:
    tables: List[TableDefinition] = field(default_factory=list)
    failures: List[SheetSQLError] = field(default_factory=list)
    built_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def base_table(self) -> Optional[TableDefinition]:
        return select_base_table(self.tables)

    def require_base_table(self) -> TableDefinition:
        base = self.base_table
        if base is None:
            raise NoBaseTable()
        return base

    def get_table(self, name: str) -> TableDefinition:
        for table in self.tables:
            if table.table_name == name:
                return table
        raise UnknownTable(name)

    @property
    def table_names(self) -> List[str]:
        return [table.table_name for table in self.tables]

    def to_dict(self) -> Dict[str, Any]:
        base = self.base_table
        return {
            "tables": [table.to_dict() for table in self.tables],
            "base_table": base.table_name if base else None,
            "failures": [failure.to_dict() for failure in self.failures],
            "built_at": self.built_at.isoformat(),
        }


@dataclass
class Sheet:
    """One worksheet as a 2-D grid of raw cell values."""
    name: str
    rows: List[List[Any]] = field(default_factory=list)
