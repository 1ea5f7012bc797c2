"""
Pytest Configuration and Fixtures
==================================
Shared fixtures for the Sheet-to-SQL test suite.
"""

import io
import os
import sys
import tempfile
from datetime import datetime
from typing import List
from unittest.mock import MagicMock

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sheet_to_sql_app.assistant import Assistant
from sheet_to_sql_app.catalog import CatalogBuilder
from sheet_to_sql_app.config import SheetSQLConfig
from sheet_to_sql_app.models import Sheet
from sheet_to_sql_app.store import DuckDBStore


# =============================================================================
# ENVIRONMENT FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep SHEET_SQL_* settings from the developer's shell out of the tests."""
    for key in list(os.environ):
        if key.startswith("SHEET_SQL_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


# =============================================================================
# STORE FIXTURES
# =============================================================================

@pytest.fixture
def store():
    """In-memory DuckDB store."""
    s = DuckDBStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def builder(store):
    return CatalogBuilder(store)


@pytest.fixture
def mock_llm():
    """Mock LLM client."""
    mock = MagicMock()
    mock.generate_sql.return_value = "SELECT * FROM patients"
    return mock


@pytest.fixture
def config():
    return SheetSQLConfig(database_path=":memory:", query_timeout=5.0)


@pytest.fixture
def assistant(config, store, mock_llm):
    return Assistant(config, store=store, llm=mock_llm)


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def patients_grid() -> List[list]:
    """Patient intake sheet with a header, a blank row and a footer total."""
    return [
        ["Patient Name", "Age", "Gender", "City", "Date of Visit"],
        ["Alice", 42, "F", "Pune", datetime(2024, 1, 5)],
        ["Bob", "37", "M", "Mumbai", "12/02/2024"],
        [None, None, None, None, None],
        ["Chitra", 29, "F", "Pune", datetime(2024, 3, 1)],
        ["Total", 108, None, None, None],
    ]


@pytest.fixture
def patients_sheet(patients_grid) -> Sheet:
    return Sheet(name="Patients", rows=patients_grid)


@pytest.fixture
def sample_workbook_sheets(patients_sheet) -> List[Sheet]:
    visits = Sheet(name="2024 Intake", rows=[
        ["Clinic", "Visits"],
        ["North", 12],
        ["South", 7],
    ])
    blank = Sheet(name="Notes", rows=[[None, None], [None, None]])
    return [patients_sheet, visits, blank]


@pytest.fixture
def sample_excel_content() -> bytes:
    """Two-sheet Excel file content as bytes."""
    import pandas as pd

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame({
            "Patient Name": ["Alice", "Bob", "Chitra", "Total"],
            "Age": [42, 37, 29, None],
            "City": ["Pune", "Mumbai", "Pune", None],
        }).to_excel(writer, sheet_name="Patients", index=False)
        pd.DataFrame({
            "Clinic": ["North", "South"],
            "Visits": [12, 7],
        }).to_excel(writer, sheet_name="2024 Intake", index=False)
    buffer.seek(0)
    return buffer.getvalue()


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def create_test_file(temp_dir: str, filename: str, content: bytes) -> str:
    """Create a test file in temp directory."""
    filepath = os.path.join(temp_dir, filename)
    with open(filepath, 'wb') as f:
        f.write(content)
    return filepath
