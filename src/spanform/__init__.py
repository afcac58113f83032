"""
spanform: declarative Cloud Spanner table schema reconciliation.

spanform compares a declared table against the live schema of a Spanner
database and issues the DDL needed to converge the two, keeping semantic
column facts in a side metadata table.
"""

__version__ = "0.1.0"
__author__ = "spanform Contributors"

from .config import SpanformConfig
from .exceptions import (
    SpanformError,
    ConfigurationError,
    ValidationError,
    DatabaseError,
    TableNotFoundError,
)

__all__ = [
    "__version__",
    "SpanformConfig",
    "SpanformError",
    "ConfigurationError",
    "ValidationError",
    "DatabaseError",
    "TableNotFoundError",
]
