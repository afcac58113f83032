"""
Tests for spanform.database.introspection module.
"""

import pytest

from spanform.database.introspection import (
    COLUMNS_QUERY,
    PRIMARY_KEY_QUERY,
    TABLE_QUERY,
    CatalogIntrospector,
    CatalogTable,
)
from spanform.exceptions import DatabaseError, SchemaError


@pytest.fixture
def introspector(mock_database):
    """Introspector over the mock database."""
    return CatalogIntrospector(mock_database)


class TestCatalogIntrospector:
    """Test CatalogIntrospector class."""

    @pytest.mark.asyncio
    async def test_get_table(self, introspector, mock_database):
        """Test table, column and key rows are assembled."""
        mock_database.fetch.side_effect = [
            [
                {
                    "TABLE_NAME": "orders",
                    "PARENT_TABLE_NAME": "customers",
                    "ON_DELETE_ACTION": "CASCADE",
                    "INTERLEAVE_TYPE": "IN PARENT",
                }
            ],
            [
                {
                    "COLUMN_NAME": "customer_id",
                    "SPANNER_TYPE": "INT64",
                    "IS_NULLABLE": "NO",
                    "COLUMN_DEFAULT": None,
                    "IS_GENERATED": "NEVER",
                    "IS_STORED": None,
                    "GENERATION_EXPRESSION": None,
                    "ORDINAL_POSITION": 1,
                },
                {
                    "COLUMN_NAME": "total_cents",
                    "SPANNER_TYPE": "INT64",
                    "IS_NULLABLE": "YES",
                    "COLUMN_DEFAULT": None,
                    "IS_GENERATED": "ALWAYS",
                    "IS_STORED": "YES",
                    "GENERATION_EXPRESSION": "total * 100",
                    "ORDINAL_POSITION": 2,
                },
            ],
            [{"COLUMN_NAME": "customer_id"}],
        ]

        table = await introspector.get_table("orders")

        assert table.name == "orders"
        assert table.parent_table == "customers"
        assert table.on_delete_action == "CASCADE"
        assert table.uses_on_delete
        assert [c.name for c in table.columns] == ["customer_id", "total_cents"]
        assert table.columns[0].is_nullable is False
        assert table.columns[1].is_generated is True
        assert table.columns[1].is_stored is True
        assert table.columns[1].generation_expression == "total * 100"
        assert table.primary_keys == ["customer_id"]

        queries = [call.args[0] for call in mock_database.fetch.await_args_list]
        assert queries == [TABLE_QUERY, COLUMNS_QUERY, PRIMARY_KEY_QUERY]
        for call in mock_database.fetch.await_args_list:
            assert call.args[1] == {"table_name": "orders"}

    @pytest.mark.asyncio
    async def test_get_missing_table(self, introspector, mock_database):
        """Test an absent table returns None after one query."""
        mock_database.fetch.return_value = []

        assert await introspector.get_table("ghost") is None
        assert mock_database.fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_database_error_wrapped(self, introspector, mock_database):
        """Test query failures become SchemaError."""
        mock_database.fetch.side_effect = DatabaseError("Query failed")

        with pytest.raises(SchemaError, match="Failed to introspect table users"):
            await introspector.get_table("users")


class TestCatalogTable:
    """Test CatalogTable helpers."""

    def test_interleave_in_has_no_on_delete(self):
        """Test INTERLEAVE IN tables do not use the on-delete action."""
        table = CatalogTable(name="t", parent_table="p", interleave_type="IN")
        assert not table.uses_on_delete
