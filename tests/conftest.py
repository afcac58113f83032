"""
Pytest configuration and shared fixtures for spanform tests.

This module provides shared fixtures for building tables and mocking the
Spanner database adapter.
"""

from typing import Callable, List, Optional
from unittest.mock import AsyncMock

import pytest
import yaml

from spanform.config import SpannerConnection
from spanform.database.connection import SpannerDatabase
from spanform.schema.model import Column, Interleave, Table


DATABASE_PATH = "projects/test-project/instances/test-instance/databases/test-db"


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def database_path() -> str:
    """Fully-qualified path of the test database."""
    return DATABASE_PATH


@pytest.fixture
def spanner_connection() -> SpannerConnection:
    """Spanner connection matching the test database path."""
    return SpannerConnection(
        project="test-project",
        instance="test-instance",
        database="test-db",
        ddl_timeout=30.0,
    )


@pytest.fixture
def config_file(tmp_path) -> str:
    """Minimal spanform configuration file."""
    path = tmp_path / "spanform.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "spanner": {
                    "project": "test-project",
                    "instance": "test-instance",
                    "database": "test-db",
                },
                "logging": {"level": "DEBUG"},
            }
        )
    )
    return str(path)


# ============================================================================
# Table Fixtures
# ============================================================================

@pytest.fixture
def make_table() -> Callable[..., Table]:
    """Factory for tables inside the test database."""

    def _make(
        columns: List[Column],
        table_id: str = "users",
        interleave: Optional[Interleave] = None,
    ) -> Table:
        return Table(
            name=f"{DATABASE_PATH}/tables/{table_id}",
            columns=columns,
            interleave=interleave,
        )

    return _make


@pytest.fixture
def users_table(make_table) -> Table:
    """Simple users table with an INT64 key and a sized string."""
    return make_table(
        [
            Column(name="id", type="INT64", required=True, is_primary_key=True),
            Column(name="name", type="STRING", size=255),
        ]
    )


@pytest.fixture
def declaration_file(tmp_path) -> Callable[[dict, str], str]:
    """Write a table declaration to a YAML file and return its path."""

    def _write(data: dict, filename: str = "table.yaml") -> str:
        path = tmp_path / filename
        path.write_text(yaml.safe_dump(data))
        return str(path)

    return _write


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def mock_database() -> AsyncMock:
    """Mock Spanner database adapter."""
    database = AsyncMock(spec=SpannerDatabase)
    database.database_path = DATABASE_PATH
    database.fetch.return_value = []
    database.update_ddl.return_value = None
    database.execute_dml.return_value = None
    return database
