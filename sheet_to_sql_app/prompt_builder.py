"""Build the SQL-generation prompt for one catalog table."""

from typing import Any, Dict, List, Optional

from .models import TableDefinition
from .naming import quote_identifier


def describe_table(table: TableDefinition, sample_rows: Optional[List[Dict[str, Any]]] = None) -> str:
    lines = [f"Table: {table.table_name} ({table.row_count} rows)"]
    if table.sheet_name:
        lines.append(f"Source sheet: {table.sheet_name}")
    lines.append("Columns:")
    for col in table.columns:
        header = f" [header: {col.source_header}]" if col.source_header and col.source_header != col.name else ""
        lines.append(f"  - {col.name} ({col.inferred_type.sql_type}){header}")
    if sample_rows:
        lines.append("Example rows:")
        for row in sample_rows[:3]:
            lines.append("  " + ", ".join(f"{key}={value}" for key, value in row.items()))
    return "\n".join(lines)


def build_prompt(
    question: str,
    table: TableDefinition,
    sample_rows: Optional[List[Dict[str, Any]]] = None,
    row_limit: int = 100,
) -> str:
    """Build prompt with user question and the schema of the single allowed table"""
    columns_list = ", ".join(table.column_names) or "No columns available"
    instruction_lines = [
        "- CRITICAL: Use ONLY columns listed under 'AVAILABLE COLUMNS'. DO NOT invent, guess, or use similar column names.",
        f"- Restrict the SQL to the table {quote_identifier(table.table_name)}. Do not reference or JOIN any other tables.",
        "- Write a single SELECT statement. Never modify data.",
        "- Do not use subqueries, CTEs, UNION or file-reading functions.",
        "- When the request asks for totals, averages, counts or grouped results, use aggregate functions and GROUP BY.",
        "- Only add filters or date conditions if they are explicitly mentioned in the question.",
        "- TIMESTAMP columns can be filtered with date literals, e.g. visit_date >= DATE '2024-01-01'.",
        f"- For lists of rows, return at most {row_limit} rows.",
        "- Return only the final SQL query without explanations.",
        f"\n### AVAILABLE COLUMNS (use ONLY these):\n{columns_list}\n",
    ]
    instructions = "Follow these rules when writing SQL:\n" + "\n".join(instruction_lines)

    return f"""### Task
Generate a DuckDB SQL query to answer the following question: {question.strip()}

### Database Schema
{describe_table(table, sample_rows)}

### Instructions
{instructions}

### SQL Query
"""
