"""Error taxonomy shared by the loader, the SQL guard and the server."""

from typing import Any, Dict, Optional


class SheetSQLError(Exception):
    """Base class for errors that may be shown to a user."""

    kind = "error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }


class IngestFailure(SheetSQLError):
    """A sheet or workbook could not be parsed at all."""

    kind = "ingest_failure"

    def __init__(self, sheet_name: Optional[str], reason: str):
        target = f"sheet '{sheet_name}'" if sheet_name is not None else "workbook"
        super().__init__(f"Could not load {target}: {reason}")
        self.sheet_name = sheet_name
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["sheet"] = self.sheet_name
        return data


class SchemaConflict(SheetSQLError):
    """A unique, bounded identifier could not be found for a table or column."""

    kind = "schema_conflict"

    def __init__(self, name: str, reason: str, sheet_name: Optional[str] = None):
        super().__init__(f"Could not name table for '{name}': {reason}")
        self.name = name
        self.reason = reason
        self.sheet_name = sheet_name

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["sheet"] = self.sheet_name
        return data


class RejectedStatement(SheetSQLError):
    """Generated SQL failed the guard's allow-list and was not executed."""

    kind = "rejected_statement"

    def __init__(self, reason: str, sql: Optional[str] = None):
        super().__init__(f"Cannot answer this question safely: {reason}")
        self.reason = reason
        self.sql = sql


class NoBaseTable(SheetSQLError):
    kind = "no_base_table"

    def __init__(self):
        super().__init__("No data is loaded yet: the workbook has no table with rows.")


class UnknownTable(SheetSQLError):
    kind = "unknown_table"

    def __init__(self, name: str):
        super().__init__(f"Unknown table: {name}")
        self.name = name


class UpstreamTimeout(SheetSQLError):
    """The LLM or the store did not answer within its time bound."""

    kind = "upstream_timeout"
    retryable = True

    def __init__(self, service: str, timeout: float):
        super().__init__(f"The {service} did not respond within {timeout:g} seconds. Please try again.")
        self.service = service
        self.timeout = timeout


class UpstreamError(SheetSQLError):
    kind = "upstream_error"

    def __init__(self, service: str, reason: str):
        super().__init__(f"The {service} request failed: {reason}")
        self.service = service
        self.reason = reason
