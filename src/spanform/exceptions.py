"""
Exception classes for spanform.
"""

from typing import Any, Dict, Optional


class SpanformError(Exception):
    """Base exception for all spanform errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        result = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            result += f" [{details_str}]"
        if self.cause:
            result += f" (caused by: {self.cause})"
        return result


class ConfigurationError(SpanformError):
    """Raised when there's an error in configuration."""

    pass


class ValidationError(SpanformError):
    """Raised when a declared table or column is invalid."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = dict(details or {})
        if path:
            details["path"] = path
        super().__init__(message, details)
        self.path = path


class DescriptorError(SpanformError):
    """Raised when a proto descriptor set cannot be fetched or parsed."""

    pass


class DatabaseError(SpanformError):
    """Raised when there's an error with database operations."""

    pass


class SchemaChangeError(DatabaseError):
    """Raised when a batch of DDL statements is rejected by the database."""

    def __init__(
        self,
        message: str,
        status_code: Optional[str] = None,
        statements: Optional[list] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        details = {}
        if status_code:
            details["status_code"] = status_code
        if statements:
            details["statements"] = len(statements)
        super().__init__(message, details, cause)
        self.status_code = status_code
        self.statements = statements or []


class SchemaError(DatabaseError):
    """Raised when there's an error with table schema operations."""

    pass


class TableNotFoundError(SchemaError):
    """Raised when a table does not exist in the database."""

    def __init__(self, table_name: str) -> None:
        super().__init__(f"Table '{table_name}' not found")
        self.table_name = table_name


class TableAlreadyExistsError(SchemaError):
    """Raised when creating a table whose name is already taken."""

    def __init__(self, table_name: str, cause: Optional[Exception] = None) -> None:
        super().__init__(f"Table '{table_name}' already exists", cause=cause)
        self.table_name = table_name


class MetadataStoreError(DatabaseError):
    """Raised when there's an error with the column metadata store."""

    pass
