"""Runtime configuration for the Sheet-to-SQL assistant."""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional


STORAGE_ROOT = Path.home() / ".sheet_to_sql"
DATA_PATH = STORAGE_ROOT / "data"
DUCKDB_PATH = DATA_PATH / "catalog.duckdb"

ENV_PREFIX = "SHEET_SQL_"


@dataclass
class SheetSQLConfig:
    """Configuration for the assistant"""
    # Source workbook
    workbook_path: Optional[str] = None

    # Database
    database_path: str = str(DUCKDB_PATH)
    query_timeout: float = 15.0  # seconds per SELECT

    # LLM Configuration (OpenAI-compatible chat completions endpoint)
    llm_url: str = "http://localhost:11434/v1/chat/completions"
    llm_model: str = "defog/sqlcoder-7b-2"
    llm_api_key: Optional[str] = field(default=None, repr=False)
    llm_timeout: float = 60.0
    max_new_tokens: int = 512
    temperature: float = 0.1

    # Guard
    row_limit: int = 100

    # Loader
    sample_size: int = 500
    insert_batch_size: int = 10000

    @classmethod
    def from_env(cls, **overrides) -> "SheetSQLConfig":
        """Build a config from SHEET_SQL_* environment variables, then apply overrides."""
        values = {}
        for f in fields(cls):
            raw = os.environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            default = f.default
            if isinstance(default, bool):
                values[f.name] = raw.strip().lower() in ("1", "true", "yes", "on")
            elif isinstance(default, int):
                values[f.name] = int(raw)
            elif isinstance(default, float):
                values[f.name] = float(raw)
            else:
                values[f.name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def ensure_storage_dirs(config: SheetSQLConfig) -> None:
    if config.database_path != ":memory:":
        Path(config.database_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
