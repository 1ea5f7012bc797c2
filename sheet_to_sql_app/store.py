"""DuckDB storage: transactional table replacement and bounded query execution."""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import duckdb

from .errors import RejectedStatement, UpstreamError, UpstreamTimeout
from .models import TableDefinition
from .naming import quote_identifier
from .value_coercion import StoredValue

logger = logging.getLogger(__name__)

INSERT_BATCH_SIZE = 10000


class DuckDBStore:
    """Owns the DuckDB database; hands out one cursor per unit of work."""

    def __init__(self, db_path: str, insert_batch_size: int = INSERT_BATCH_SIZE):
        self.db_path = db_path
        self.insert_batch_size = insert_batch_size
        self._conn = duckdb.connect(db_path)
        logger.info(f"Connected to DuckDB database: {db_path}")

    def cursor(self) -> duckdb.DuckDBPyConnection:
        return self._conn.cursor()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def list_tables(self) -> List[str]:
        with self.cursor() as cur:
            rows = cur.execute(
                "SELECT table_name FROM information_schema.tables WHERE table_schema = 'main' ORDER BY table_name"
            ).fetchall()
        return [row[0] for row in rows]

    def table_columns(self, table_name: str) -> List[Dict[str, Any]]:
        with self.cursor() as cur:
            rows = cur.execute(f"PRAGMA table_info({quote_identifier(table_name)})").fetchall()
        return [{"column_name": name, "data_type": dtype} for _cid, name, dtype, *_rest in rows]

    def count_rows(self, table_name: str) -> int:
        with self.cursor() as cur:
            return cur.execute(f"SELECT COUNT(*) FROM {quote_identifier(table_name)}").fetchone()[0]

    def drop_table(self, table_name: str) -> None:
        with self.cursor() as cur:
            cur.execute(f"DROP TABLE IF EXISTS {quote_identifier(table_name)}")
        logger.info(f"Dropped table {table_name}")

    def insert_rows(self, cur: duckdb.DuckDBPyConnection, table: TableDefinition,
                    rows: Sequence[Sequence[StoredValue]]) -> None:
        """Batch INSERT of coerced rows on an open cursor."""
        if not rows:
            return
        placeholders = ", ".join("?" for _ in table.columns)
        statement = f"INSERT INTO {quote_identifier(table.table_name)} VALUES ({placeholders})"
        for start in range(0, len(rows), self.insert_batch_size):
            batch = [list(row) for row in rows[start:start + self.insert_batch_size]]
            cur.executemany(statement, batch)

    def replace_table(self, table: TableDefinition, rows: Sequence[Sequence[StoredValue]]) -> None:
        """Drop, recreate and fill one table inside a single transaction."""
        name = quote_identifier(table.table_name)
        column_sql = ", ".join(
            f"{quote_identifier(col.name)} {col.inferred_type.sql_type}" for col in table.columns
        )
        cur = self.cursor()
        try:
            cur.begin()
            try:
                cur.execute(f"DROP TABLE IF EXISTS {name}")
                cur.execute(f"CREATE TABLE {name} ({column_sql})")
                self.insert_rows(cur, table, rows)
                cur.commit()
            except Exception:
                logger.error(f"Loading table {table.table_name} failed; rolling back")
                cur.rollback()
                raise
        finally:
            cur.close()


@dataclass
class QueryOutput:
    columns: List[str] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


class DuckDBSQLExecutor:
    """Execute SQL queries in DuckDB with a time bound.

    Only a single SELECT (as DuckDB's own parser sees it) is run, inside a
    transaction that is always rolled back, so nothing a query does persists.
    """

    def __init__(self, store: DuckDBStore, timeout: float = 15.0):
        self.store = store
        self.timeout = timeout

    def execute_query(self, sql: str, timeout: Optional[float] = None) -> QueryOutput:
        timeout = self.timeout if timeout is None else timeout
        cur = self.store.cursor()
        timer = threading.Timer(timeout, cur.interrupt)
        timer.start()
        try:
            statements = cur.extract_statements(sql)
            if len(statements) != 1 or statements[0].type != duckdb.StatementType.SELECT:
                logger.warning(f"Refusing to run non-SELECT SQL: {sql}")
                raise RejectedStatement("only a single SELECT statement can be run", sql)

            cur.begin()
            result = cur.execute(sql)
            columns = [desc[0] for desc in result.description] if result.description else []
            rows = [dict(zip(columns, row)) for row in result.fetchall()] if columns else []
            cur.rollback()
            return QueryOutput(columns=columns, rows=rows)
        except duckdb.InterruptException as exc:
            logger.warning(f"Query interrupted after {timeout}s: {sql}")
            raise UpstreamTimeout("database", timeout) from exc
        except duckdb.Error as exc:
            logger.error(f"DuckDB SQL Error: {exc}")
            raise UpstreamError("database", str(exc)) from exc
        finally:
            timer.cancel()
            cur.close()
