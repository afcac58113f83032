"""
Column metadata store for spanform.

Keeps per-column semantic facts that the Spanner catalog does not expose
(computed flags, auto timestamps, proto descriptor locations, ...) in a
``column_metadata`` table inside the managed database.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ..config import MetadataStoreConfig
from ..database.connection import SpannerDatabase
from ..exceptions import DatabaseError, MetadataStoreError, SchemaChangeError
from .model import Column, DescriptorSource, ProtoDescriptor


logger = logging.getLogger(__name__)

NIL = "nil"

_BOOL_FIELDS = (
    "required",
    "auto_increment",
    "unique",
    "auto_create_time",
    "auto_update_time",
    "is_primary_key",
    "is_computed",
)
_INT_FIELDS = ("size", "precision", "scale")
_STRING_FIELDS = ("type", "default_value", "computation_ddl")


def _encode(value) -> str:
    if value is None:
        return NIL
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _decode_bool(value: str) -> Optional[bool]:
    if value == "true":
        return True
    if value == "false":
        return False
    return None


class ColumnFacts(BaseModel):
    """Stringified column facts; ``"nil"`` means the fact is not tracked."""

    type: str = Field(NIL, description="Logical type")
    size: str = Field(NIL, description="Length of sized types")
    precision: str = Field(NIL, description="Numeric precision")
    scale: str = Field(NIL, description="Numeric scale")
    required: str = Field(NIL, description="NOT NULL constraint")
    auto_increment: str = Field(NIL, description="Auto-increment flag")
    unique: str = Field(NIL, description="Uniqueness flag")
    auto_create_time: str = Field(NIL, description="Creation timestamp flag")
    auto_update_time: str = Field(NIL, description="Commit timestamp flag")
    default_value: str = Field(NIL, description="Default value expression")
    is_primary_key: str = Field(NIL, description="Primary key flag")
    is_computed: str = Field(NIL, description="Generated column flag")
    computation_ddl: str = Field(NIL, description="Generation expression")
    proto_package: str = Field(NIL, description="Proto package")
    file_descriptor_set_path: str = Field(NIL, description="Descriptor set location")
    file_descriptor_set_path_source: str = Field(
        NIL, description="Descriptor set location kind"
    )

    @classmethod
    def from_column(cls, column: Column) -> "ColumnFacts":
        values = {
            name: _encode(getattr(column, name))
            for name in _BOOL_FIELDS + _INT_FIELDS + _STRING_FIELDS
        }
        proto = column.proto
        if proto is not None:
            values["proto_package"] = _encode(proto.proto_package)
            values["file_descriptor_set_path"] = _encode(proto.descriptor_set_path)
            source = DescriptorSource(proto.descriptor_set_source)
            if source != DescriptorSource.UNSPECIFIED:
                values["file_descriptor_set_path_source"] = source.value
        return cls(**values)

    def to_column(self, name: str) -> Column:
        """Build a column from the tracked facts only.

        Booleans must read exactly ``true``/``false``; any other string
        field counts unless it is ``nil``.
        """
        values: Dict[str, object] = {"name": name}

        for field in _BOOL_FIELDS:
            flag = _decode_bool(getattr(self, field))
            if flag is not None:
                values[field] = flag

        for field in _INT_FIELDS:
            raw = getattr(self, field)
            if raw == NIL:
                continue
            try:
                values[field] = int(raw)
            except ValueError:
                raise MetadataStoreError(
                    f"Invalid {field} '{raw}' stored for column {name}"
                )

        for field in _STRING_FIELDS:
            raw = getattr(self, field)
            if raw != NIL:
                values[field] = raw

        package = "" if self.proto_package == NIL else self.proto_package
        path = "" if self.file_descriptor_set_path == NIL else self.file_descriptor_set_path
        if package or path:
            source = DescriptorSource.UNSPECIFIED
            if self.file_descriptor_set_path_source in (
                DescriptorSource.GCS.value,
                DescriptorSource.URL.value,
            ):
                source = DescriptorSource(self.file_descriptor_set_path_source)
            values["proto"] = ProtoDescriptor(
                proto_package=package or None,
                descriptor_set_path=path or None,
                descriptor_set_source=source,
            )

        return Column(**values)


@dataclass
class ColumnMetadataRecord:
    """A stored metadata row."""

    table_name: str
    column_name: str
    facts: ColumnFacts
    updated_at: Optional[datetime] = None


class ColumnMetadataStore:
    """
    Reads and writes column facts in the metadata table.

    The backing table is created on first use. Creation is retried with
    exponential backoff because several tables may be provisioned at once.
    """

    def __init__(
        self,
        database: SpannerDatabase,
        config: Optional[MetadataStoreConfig] = None,
    ):
        self.database = database
        self.config = config or MetadataStoreConfig()
        self._ready = False
        self._ready_lock = asyncio.Lock()

    @property
    def table_name(self) -> str:
        return self.config.table_name

    def create_table_ddl(self) -> str:
        return (
            f"CREATE TABLE `{self.table_name}` ("
            "table_name STRING(MAX) NOT NULL, "
            "column_name STRING(MAX) NOT NULL, "
            "metadata STRING(MAX), "
            "updated_at TIMESTAMP"
            ") PRIMARY KEY (table_name, column_name)"
        )

    async def ensure_table(self) -> None:
        """Create the metadata table unless it is known to exist."""
        if self._ready:
            return
        async with self._ready_lock:
            if self._ready:
                return
            await self._retry_with_backoff(self._create_table_if_not_exists)
            self._ready = True

    async def _create_table_if_not_exists(self) -> None:
        rows = await self.database.fetch(
            "SELECT TABLE_NAME FROM INFORMATION_SCHEMA.TABLES "
            "WHERE TABLE_SCHEMA = '' AND TABLE_NAME = @table_name",
            {"table_name": self.table_name},
        )
        if rows:
            return

        logger.info(f"Creating metadata table {self.table_name}")
        try:
            await self.database.update_ddl([self.create_table_ddl()])
        except SchemaChangeError as e:
            if e.status_code == "ALREADY_EXISTS" or "Duplicate name" in str(e):
                logger.debug(f"Metadata table {self.table_name} created concurrently")
                return
            raise

    async def _retry_with_backoff(self, func, *args, **kwargs):
        """Retry a coroutine with exponential backoff and jitter."""
        attempts = self.config.ensure_attempts
        last_exception = None

        for attempt in range(attempts):
            try:
                return await func(*args, **kwargs)
            except DatabaseError as e:
                last_exception = e
                if attempt < attempts - 1:
                    delay = self.config.ensure_initial_delay * (2 ** attempt)
                    delay += random.uniform(0, delay / 2)
                    logger.warning(
                        f"Metadata table setup failed (attempt {attempt + 1}), "
                        f"retrying in {delay:.2f}s: {e}"
                    )
                    await asyncio.sleep(delay)

        raise MetadataStoreError(
            f"Failed to create metadata table {self.table_name} "
            f"after {attempts} attempts",
            cause=last_exception,
        ) from last_exception

    async def get(self, table_id: str) -> List[ColumnMetadataRecord]:
        """Get every metadata row for a table."""
        await self.ensure_table()
        rows = await self.database.fetch(
            f"SELECT table_name, column_name, metadata, updated_at "
            f"FROM `{self.table_name}` WHERE table_name = @table_name",
            {"table_name": table_id},
        )

        records = []
        for row in rows:
            blob = row.get("metadata")
            if not blob:
                continue
            try:
                facts = ColumnFacts.model_validate_json(blob)
            except PydanticValidationError as e:
                raise MetadataStoreError(
                    f"Corrupt metadata for {table_id}.{row['column_name']}",
                    cause=e,
                ) from e
            records.append(
                ColumnMetadataRecord(
                    table_name=row["table_name"],
                    column_name=row["column_name"],
                    facts=facts,
                    updated_at=row.get("updated_at"),
                )
            )
        return records

    async def upsert(self, table_id: str, columns: Iterable[Column]) -> None:
        """Write facts for the given columns, overwriting existing rows."""
        await self.ensure_table()
        statements = [
            (
                f"INSERT OR UPDATE INTO `{self.table_name}` "
                "(table_name, column_name, metadata, updated_at) "
                "VALUES (@table_name, @column_name, @metadata, CURRENT_TIMESTAMP())",
                {
                    "table_name": table_id,
                    "column_name": column.name,
                    "metadata": ColumnFacts.from_column(column).model_dump_json(),
                },
            )
            for column in columns
        ]
        await self.database.execute_dml(statements)
        logger.debug(f"Stored metadata for {len(statements)} columns of {table_id}")

    async def delete(self, table_id: str, columns: Optional[List[str]] = None) -> None:
        """Delete metadata rows for some columns, or all when ``columns`` is None.

        An empty list deletes nothing.
        """
        if columns is not None and not columns:
            return
        await self.ensure_table()
        if columns is not None:
            statement = (
                f"DELETE FROM `{self.table_name}` "
                "WHERE table_name = @table_name AND column_name IN UNNEST(@column_names)",
                {"table_name": table_id, "column_names": list(columns)},
            )
        else:
            statement = (
                f"DELETE FROM `{self.table_name}` WHERE table_name = @table_name",
                {"table_name": table_id},
            )
        await self.database.execute_dml([statement])
