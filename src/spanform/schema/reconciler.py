"""
Table lifecycle orchestration for spanform.

Ties catalog introspection, the metadata store, the differ and the DDL
synthesizer together into create, get, update and delete operations.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional, Set

from ..database.connection import SpannerDatabase
from ..database.introspection import CatalogColumn, CatalogIntrospector, CatalogTable
from ..exceptions import (
    SchemaChangeError,
    SchemaError,
    SpanformError,
    TableAlreadyExistsError,
    TableNotFoundError,
    ValidationError,
)
from . import ddl, differ
from .descriptors import DescriptorFetcher, register_proto_bundle
from .metadata import ColumnMetadataRecord, ColumnMetadataStore
from .model import (
    Column,
    DataType,
    Interleave,
    OnDeleteAction,
    ProtoDescriptor,
    TABLE_NAME_PATTERN,
    Table,
    validate_table,
)
from .types import decode_type


logger = logging.getLogger(__name__)


def column_from_catalog(catalog_column: CatalogColumn) -> Column:
    """Build a column from catalog information alone."""
    decoded = decode_type(catalog_column.spanner_type)
    values = {
        "name": catalog_column.name,
        "type": decoded.kind,
        "size": decoded.size,
        "required": not catalog_column.is_nullable,
        "is_computed": catalog_column.is_generated,
    }
    if decoded.proto_package:
        values["proto"] = ProtoDescriptor(proto_package=decoded.proto_package)
    if catalog_column.default is not None:
        values["default_value"] = catalog_column.default
    if catalog_column.is_generated and catalog_column.generation_expression is not None:
        values["computation_ddl"] = catalog_column.generation_expression
    return Column(**values)


def interleave_from_catalog(catalog: CatalogTable) -> Optional[Interleave]:
    if not catalog.parent_table or not catalog.interleave_type:
        return None
    action = OnDeleteAction.UNSPECIFIED
    if catalog.uses_on_delete and catalog.on_delete_action:
        try:
            action = OnDeleteAction(catalog.on_delete_action)
        except ValueError:
            logger.warning(
                f"Unknown on-delete action '{catalog.on_delete_action}' "
                f"for {catalog.name}"
            )
    return Interleave(parent=catalog.parent_table, on_delete=action)


def assemble_table(
    name: str, catalog: CatalogTable, records: List[ColumnMetadataRecord]
) -> Table:
    """Merge catalog columns with stored facts.

    A column with a metadata row is built from the row alone, ``"nil"``
    fields included; otherwise it is decoded from the catalog. Catalog
    primary key columns are always marked as primary keys.
    """
    facts = {r.column_name: r.facts for r in records}
    primary_keys = set(catalog.primary_keys)

    columns = []
    for catalog_column in catalog.columns:
        if catalog_column.name in facts:
            column = facts[catalog_column.name].to_column(catalog_column.name)
        else:
            column = column_from_catalog(catalog_column)
        if catalog_column.name in primary_keys:
            column = column.model_copy(update={"is_primary_key": True})
        columns.append(column)

    return Table(name=name, columns=columns, interleave=interleave_from_catalog(catalog))


class TableReconciler:
    """
    Converges live Spanner tables to declared ones.

    A table is either absent or present. ``create_table`` moves it from
    absent to present, ``delete_table`` back, and ``update_table`` plans
    and applies column drops, adds and alterations in place.
    """

    def __init__(
        self,
        database: SpannerDatabase,
        metadata_store: Optional[ColumnMetadataStore] = None,
        descriptor_fetcher: Optional[DescriptorFetcher] = None,
    ):
        self.database = database
        self.introspector = CatalogIntrospector(database)
        self.metadata_store = metadata_store or ColumnMetadataStore(database)
        self.descriptor_fetcher = descriptor_fetcher or DescriptorFetcher()

        # Tables with a mutation in flight
        self._active_operations: Set[str] = set()
        self._operation_lock = asyncio.Lock()

    @asynccontextmanager
    async def _exclusive(self, table_id: str):
        async with self._operation_lock:
            if table_id in self._active_operations:
                raise SchemaError(f"Operation already in progress for {table_id}")
            self._active_operations.add(table_id)
        try:
            yield
        finally:
            self._active_operations.discard(table_id)

    def _check_database(self, table: Table) -> None:
        if table.database != self.database.database_path:
            raise ValidationError(
                f"Table {table.name} is not in database {self.database.database_path}",
                path="table.name",
            )

    def _check_name(self, name: str) -> Table:
        if not TABLE_NAME_PATTERN.match(name):
            raise ValidationError(f"Invalid table name: {name}", path="table.name")
        table = Table(name=name)
        self._check_database(table)
        return table

    async def get_table(self, name: str) -> Table:
        """Introspect a table.

        Raises:
            TableNotFoundError: if the table does not exist.
        """
        table_id = self._check_name(name).table_id
        catalog = await self.introspector.get_table(table_id)
        if catalog is None:
            raise TableNotFoundError(table_id)
        records = await self.metadata_store.get(table_id)
        return assemble_table(name, catalog, records)

    async def _get_or_none(self, name: str) -> Optional[Table]:
        try:
            return await self.get_table(name)
        except TableNotFoundError:
            return None

    async def create_table(self, table: Table) -> Table:
        """Create a table and record its column facts."""
        validate_table(table)
        self._check_database(table)

        async with self._exclusive(table.table_id):
            await self._create(table)
        return await self.get_table(table.name)

    async def _create(self, table: Table) -> None:
        start_time = asyncio.get_running_loop().time()
        logger.info(f"Creating table {table.table_id}")

        table = await self._register_proto_bundles(table)
        statement = ddl.create_statement(table)
        try:
            await self.database.update_ddl([statement])
        except SchemaChangeError as e:
            if e.status_code == "ALREADY_EXISTS" or "Duplicate name in schema" in str(e):
                raise TableAlreadyExistsError(table.table_id, cause=e) from e
            raise

        await self._write_metadata(table.table_id, table.columns)

        elapsed = (asyncio.get_running_loop().time() - start_time) * 1000
        logger.info(f"Created table {table.table_id} ({elapsed:.1f}ms)")

    async def update_table(self, table: Table, allow_missing: bool = False) -> Table:
        """Converge an existing table to ``table``.

        When the table is absent it is created if ``allow_missing`` is set,
        otherwise TableNotFoundError is raised.
        """
        validate_table(table)
        self._check_database(table)

        async with self._exclusive(table.table_id):
            observed = await self._get_or_none(table.name)
            if observed is None:
                if not allow_missing:
                    raise TableNotFoundError(table.table_id)
                logger.info(f"Table {table.table_id} not found, creating it")
                await self._create(table)
            else:
                await self._apply_update(table, observed)

        return await self.get_table(table.name)

    async def _apply_update(self, desired: Table, observed: Table) -> None:
        table_id = desired.table_id
        start_time = asyncio.get_running_loop().time()
        logger.info(f"Starting update for {table_id}")

        if differ.interleave_key(desired) != differ.interleave_key(observed):
            logger.warning(
                f"Interleave of {table_id} differs from the declaration; "
                f"interleaving cannot be changed in place"
            )

        # Facts such as unique or precision are not compared; always store them
        if differ.tables_equal(desired, observed):
            logger.info(f"No changes needed for {table_id}")
            await self._write_metadata(table_id, desired.columns)
            return

        plan = differ.plan(desired, observed)
        for name in plan.dropped_columns:
            column = observed.column(name)
            if column is not None and column.resolve("is_primary_key"):
                logger.warning(f"Dropping primary key column {table_id}.{name}")

        desired = await self._register_proto_bundles(desired)

        if plan.drop_statements:
            await self.database.update_ddl(plan.drop_statements)
            await self._delete_metadata(table_id, plan.dropped_columns)

        if plan.change_statements:
            await self.database.update_ddl(plan.change_statements)

        await self._write_metadata(table_id, desired.columns)

        elapsed = (asyncio.get_running_loop().time() - start_time) * 1000
        logger.info(
            f"Update completed for {table_id}: {len(plan.dropped_columns)} dropped, "
            f"{len(plan.added_columns)} added, {len(plan.altered_columns)} altered "
            f"({elapsed:.1f}ms)"
        )

    async def plan_update(self, table: Table) -> differ.TablePlan:
        """Plan the statements ``update_table`` would apply, without applying."""
        validate_table(table)
        self._check_database(table)

        observed = await self._get_or_none(table.name)
        if observed is None:
            return differ.plan_create(table)
        return differ.plan(table, observed)

    async def delete_table(self, name: str) -> None:
        """Drop a table and its stored column facts."""
        table_id = self._check_name(name).table_id

        async with self._exclusive(table_id):
            existing = await self.get_table(name)
            logger.info(f"Dropping table {table_id}")
            await self.database.update_ddl([ddl.drop_statement(existing)])
            await self._delete_metadata(table_id)

    async def _register_proto_bundles(self, table: Table) -> Table:
        """Fetch descriptors and register bundles for PROTO columns with a source."""
        columns = []
        changed = False
        for column in table.columns:
            proto = column.proto
            if column.type == DataType.PROTO and proto is not None and proto.needs_fetch:
                proto = await self.descriptor_fetcher.resolve(proto)
                await register_proto_bundle(
                    self.database, proto.proto_package, proto.descriptor_set
                )
                column = column.model_copy(update={"proto": proto})
                changed = True
            columns.append(column)

        if not changed:
            return table
        return table.model_copy(update={"columns": columns})

    async def _write_metadata(self, table_id: str, columns: List[Column]) -> None:
        try:
            await self.metadata_store.upsert(table_id, columns)
        except SpanformError as e:
            logger.error(f"Failed to store column metadata for {table_id}: {e}")

    async def _delete_metadata(
        self, table_id: str, columns: Optional[List[str]] = None
    ) -> None:
        try:
            await self.metadata_store.delete(table_id, columns)
        except SpanformError as e:
            logger.error(f"Failed to delete column metadata for {table_id}: {e}")

    async def close(self) -> None:
        await self.descriptor_fetcher.close()
        await self.database.close()

    async def __aenter__(self) -> "TableReconciler":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
