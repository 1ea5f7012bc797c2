"""
Assistant state: the one owned object behind every request.

Holds the DuckDB store, the catalog builder (and through it the active
catalog), the query executor and the LLM client. ``refresh`` rebuilds the
catalog from a workbook; ``ask`` answers one question against one table.
"""

import logging
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Union

from .catalog import CatalogBuilder
from .config import SheetSQLConfig, ensure_storage_dirs
from .errors import IngestFailure, SheetSQLError
from .llm_client import LLMClient
from .load_excel import read_workbook
from .models import Catalog, TableDefinition
from .naming import quote_identifier
from .prompt_builder import build_prompt
from .sql_guard import sanitize
from .store import DuckDBSQLExecutor, DuckDBStore

logger = logging.getLogger(__name__)

PROMPT_SAMPLE_ROWS = 3


class Assistant:
    def __init__(
        self,
        config: SheetSQLConfig,
        store: Optional[DuckDBStore] = None,
        llm: Optional[LLMClient] = None,
    ):
        self.config = config
        if store is None:
            ensure_storage_dirs(config)
            store = DuckDBStore(config.database_path, insert_batch_size=config.insert_batch_size)
        self.store = store
        self.builder = CatalogBuilder(store, sample_size=config.sample_size)
        self.executor = DuckDBSQLExecutor(store, timeout=config.query_timeout)
        self.llm = llm or LLMClient(config)

    @property
    def catalog(self) -> Catalog:
        return self.builder.catalog or Catalog()

    def refresh(self, workbook: Optional[Union[str, Path, BinaryIO]] = None) -> Catalog:
        """Rebuild the catalog from ``workbook`` or the configured workbook path."""
        source = workbook if workbook is not None else self.config.workbook_path
        if source is None:
            raise IngestFailure(None, "no workbook configured (set SHEET_SQL_WORKBOOK_PATH)")
        sheets = read_workbook(source)
        return self.builder.refresh(sheets)

    def resolve_table(self, table_name: Optional[str] = None) -> TableDefinition:
        catalog = self.catalog
        if table_name:
            return catalog.get_table(table_name)
        return catalog.require_base_table()

    def _sample_rows(self, table: TableDefinition) -> List[Dict[str, Any]]:
        sql = f"SELECT * FROM {quote_identifier(table.table_name)} LIMIT {PROMPT_SAMPLE_ROWS}"
        try:
            return self.executor.execute_query(sql).rows
        except SheetSQLError as exc:
            logger.warning(f"Could not fetch example rows for {table.table_name}: {exc.message}")
            return []

    def ask(self, question: str, table_name: Optional[str] = None) -> Dict[str, Any]:
        table = self.resolve_table(table_name)
        prompt = build_prompt(
            question,
            table,
            sample_rows=self._sample_rows(table),
            row_limit=self.config.row_limit,
        )
        raw_sql = self.llm.generate_sql(prompt)
        sanitized = sanitize(raw_sql, table.table_name, max_rows=self.config.row_limit)
        output = self.executor.execute_query(sanitized.sql)
        return {
            "question": question,
            "sql": sanitized.sql,
            "generated_sql": raw_sql,
            "table": table.table_name,
            "is_aggregate": sanitized.is_aggregate,
            "row_limit": sanitized.row_limit,
            "columns": output.columns,
            "rows": output.rows,
            "row_count": output.row_count,
        }

    def close(self) -> None:
        self.store.close()
