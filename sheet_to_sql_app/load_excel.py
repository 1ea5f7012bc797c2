"""Load every sheet of an Excel workbook into DuckDB tables for querying."""

import argparse
import logging
from pathlib import Path
from typing import BinaryIO, List, Union

import pandas as pd

from .errors import IngestFailure
from .models import Sheet


logger = logging.getLogger(__name__)


def read_workbook(source: Union[str, Path, BinaryIO]) -> List[Sheet]:
    """Read all sheets as raw grids (no header handling, no type conversion)."""
    try:
        frames = pd.read_excel(source, sheet_name=None, header=None, dtype=object)
    except Exception as exc:
        raise IngestFailure(
            None,
            "Unable to read workbook. Ensure it is a valid .xlsx or .xls workbook and that the required engine "
            f"(openpyxl or xlrd) is installed. Original error: {exc}",
        ) from exc

    sheets = []
    for name, df in frames.items():
        df = df.astype(object).where(pd.notna(df), None)
        sheets.append(Sheet(name=str(name), rows=df.values.tolist()))
    logger.info(f"Read {len(sheets)} sheets from workbook")
    return sheets


def main():
    from .assistant import Assistant
    from .config import SheetSQLConfig

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s,%(name)s,%(levelname)s,%(message)s'
    )

    parser = argparse.ArgumentParser(description="Load an Excel workbook into DuckDB")
    parser.add_argument("excel_path", help="Path to the Excel file")
    parser.add_argument("--db", help="DuckDB database path (default: SHEET_SQL_DATABASE_PATH or ~/.sheet_to_sql)")
    args = parser.parse_args()

    excel_path = Path(args.excel_path).expanduser().resolve()
    if not excel_path.exists():
        raise SystemExit(f"File not found: {excel_path}")

    config = SheetSQLConfig.from_env(workbook_path=str(excel_path), database_path=args.db)
    assistant = Assistant(config)
    try:
        print(f"Loading {excel_path} into {config.database_path}...")
        try:
            catalog = assistant.refresh()
        except IngestFailure as exc:
            raise SystemExit(exc.message)

        base = catalog.base_table
        for table in catalog.tables:
            marker = " (base)" if base is table else ""
            print(f"  {table.table_name}{marker}: {table.row_count} rows, {len(table.columns)} columns")
        for failure in catalog.failures:
            print(f"  skipped: {failure.message}")
        print("Done.")
    finally:
        assistant.close()


if __name__ == "__main__":
    main()
