"""
Catalog Builder
===============

Runs the sheet loader over every sheet of a workbook, gives each table a
safe unique name, loads it into DuckDB in its own transaction and publishes
the resulting Catalog.

Only one build runs at a time. A caller that arrives while a build of the
same workbook is in flight waits for it and receives that build's catalog
rather than starting a second one. A caller with a different workbook waits
and then builds its own. DDL from two builds never interleaves.
"""

import hashlib
import logging
import threading
from typing import Iterable, List, Optional, Set

from .errors import IngestFailure, SchemaConflict, SheetSQLError
from .models import Catalog, Sheet, TableDefinition
from .naming import make_table_name
from .sheet_loader import SAMPLE_SIZE, load_sheet
from .store import DuckDBStore

logger = logging.getLogger(__name__)


def workbook_fingerprint(sheets: List[Sheet]) -> str:
    """Digest of sheet names and raw cells; equal workbooks share a fingerprint."""
    digest = hashlib.sha256()
    for sheet in sheets:
        digest.update(repr((sheet.name, sheet.rows)).encode("utf-8"))
    return digest.hexdigest()


class CatalogBuilder:
    """Single writer of the catalog and of its backing tables."""

    def __init__(self, store: DuckDBStore, sample_size: int = SAMPLE_SIZE):
        self.store = store
        self.sample_size = sample_size
        self._build_lock = threading.Lock()
        self._generation = 0
        self._fingerprint: Optional[str] = None
        self._catalog: Optional[Catalog] = None

    @property
    def catalog(self) -> Optional[Catalog]:
        return self._catalog

    @property
    def is_building(self) -> bool:
        return self._build_lock.locked()

    def build(self, sheets: Iterable[Sheet]) -> Catalog:
        return self.refresh(sheets)

    def refresh(self, sheets: Iterable[Sheet]) -> Catalog:
        """Full rebuild. Concurrent callers with the same workbook share one build."""
        sheets = list(sheets)
        fingerprint = workbook_fingerprint(sheets)
        generation = self._generation
        if self._build_lock.locked():
            logger.info("Catalog build already in progress; waiting for it to finish")
        with self._build_lock:
            if (self._generation != generation and self._catalog is not None
                    and self._fingerprint == fingerprint):
                return self._catalog
            catalog = self._build(sheets)
            self._catalog = catalog
            self._fingerprint = fingerprint
            self._generation += 1
            return catalog

    def _build(self, sheets: List[Sheet]) -> Catalog:
        tables: List[TableDefinition] = []
        failures: List[SheetSQLError] = []
        taken: Set[str] = set()
        failed_names: Set[str] = set()

        for sheet in sheets:
            loaded = load_sheet(sheet, sample_size=self.sample_size)
            if loaded.error is not None:
                failures.append(loaded.error)
                continue
            if loaded.is_empty:
                failures.append(IngestFailure(sheet.name, "sheet has no columns"))
                continue

            try:
                table_name = make_table_name(sheet.name, taken)
            except SchemaConflict as exc:
                logger.error(exc.message)
                failures.append(exc)
                continue
            taken.add(table_name)
            loaded.table.table_name = table_name

            try:
                self.store.replace_table(loaded.table, loaded.rows)
            except Exception as exc:
                logger.error(f"Could not load table {table_name} from sheet '{sheet.name}': {exc}")
                failures.append(IngestFailure(sheet.name, f"table {table_name} was not loaded: {exc}"))
                failed_names.add(table_name)
                continue
            tables.append(loaded.table)

        self._drop_stale_tables({t.table_name for t in tables} | failed_names)

        catalog = Catalog(tables=tables, failures=failures)
        base = catalog.base_table
        logger.info(
            f"Catalog built: {len(tables)} tables, {len(failures)} failures, "
            f"base table {base.table_name if base else None}"
        )
        return catalog

    def _drop_stale_tables(self, keep: Set[str]) -> None:
        """Drop stored tables the new catalog does not cover, including leftovers from earlier runs."""
        for name in self.store.list_tables():
            if name not in keep:
                self.store.drop_table(name)
