"""
Catalog introspection for spanform.

Reads table, column and primary key information for a single table from
Spanner's INFORMATION_SCHEMA.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .connection import SpannerDatabase
from ..exceptions import DatabaseError, SchemaError


logger = logging.getLogger(__name__)


TABLE_QUERY = """
    SELECT TABLE_NAME, PARENT_TABLE_NAME, ON_DELETE_ACTION, INTERLEAVE_TYPE
    FROM INFORMATION_SCHEMA.TABLES
    WHERE TABLE_SCHEMA = '' AND TABLE_NAME = @table_name
"""

COLUMNS_QUERY = """
    SELECT COLUMN_NAME, SPANNER_TYPE, IS_NULLABLE, COLUMN_DEFAULT,
           IS_GENERATED, IS_STORED, GENERATION_EXPRESSION, ORDINAL_POSITION
    FROM INFORMATION_SCHEMA.COLUMNS
    WHERE TABLE_SCHEMA = '' AND TABLE_NAME = @table_name
    ORDER BY ORDINAL_POSITION
"""

PRIMARY_KEY_QUERY = """
    SELECT COLUMN_NAME
    FROM INFORMATION_SCHEMA.INDEX_COLUMNS
    WHERE TABLE_SCHEMA = '' AND TABLE_NAME = @table_name
      AND INDEX_NAME = 'PRIMARY_KEY'
    ORDER BY ORDINAL_POSITION
"""


@dataclass
class CatalogColumn:
    """A column as the catalog reports it."""

    name: str
    spanner_type: str
    is_nullable: bool = True
    default: Optional[str] = None
    is_generated: bool = False
    is_stored: bool = False
    generation_expression: Optional[str] = None
    ordinal_position: int = 0


@dataclass
class CatalogTable:
    """A table as the catalog reports it."""

    name: str
    parent_table: Optional[str] = None
    on_delete_action: Optional[str] = None
    interleave_type: Optional[str] = None
    columns: List[CatalogColumn] = field(default_factory=list)
    primary_keys: List[str] = field(default_factory=list)

    @property
    def uses_on_delete(self) -> bool:
        """INTERLEAVE IN PARENT tables carry an on-delete action."""
        return (self.interleave_type or "IN PARENT") == "IN PARENT"


class CatalogIntrospector:
    """Queries INFORMATION_SCHEMA for a single table."""

    def __init__(self, database: SpannerDatabase):
        self.database = database

    async def get_table(self, table_name: str) -> Optional[CatalogTable]:
        """Get catalog information for a table, or None when it is absent."""
        rows = await self._fetch(TABLE_QUERY, table_name)
        if not rows:
            return None

        row = rows[0]
        table = CatalogTable(
            name=row["TABLE_NAME"],
            parent_table=row.get("PARENT_TABLE_NAME") or None,
            on_delete_action=row.get("ON_DELETE_ACTION") or None,
            interleave_type=row.get("INTERLEAVE_TYPE") or None,
        )

        for col in await self._fetch(COLUMNS_QUERY, table_name):
            table.columns.append(
                CatalogColumn(
                    name=col["COLUMN_NAME"],
                    spanner_type=col["SPANNER_TYPE"],
                    is_nullable=col.get("IS_NULLABLE") != "NO",
                    default=col.get("COLUMN_DEFAULT"),
                    is_generated=col.get("IS_GENERATED") == "ALWAYS",
                    is_stored=col.get("IS_STORED") == "YES",
                    generation_expression=col.get("GENERATION_EXPRESSION"),
                    ordinal_position=col.get("ORDINAL_POSITION") or 0,
                )
            )

        table.primary_keys = [
            pk["COLUMN_NAME"] for pk in await self._fetch(PRIMARY_KEY_QUERY, table_name)
        ]

        logger.debug(
            f"Introspected {table_name}: {len(table.columns)} columns, "
            f"primary key {table.primary_keys}"
        )
        return table

    async def _fetch(self, sql: str, table_name: str):
        try:
            return await self.database.fetch(sql, {"table_name": table_name})
        except DatabaseError as e:
            raise SchemaError(
                f"Failed to introspect table {table_name}: {e}", cause=e
            ) from e
