"""
Table, column and interleave value objects for spanform.

Every value here is an immutable snapshot. Optional column attributes use
``None`` for "not set"; the defaults they fall back to are resolved in one
place, ``Column.resolve``.
"""

import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ConfigurationError, ValidationError


TABLE_NAME_PATTERN = re.compile(
    r"^projects/(?P<project>[^/]+)/instances/(?P<instance>[^/]+)/"
    r"databases/(?P<database>[^/]+)/tables/(?P<table>[^/]+)$"
)
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,127}$")


class DataType(str, Enum):
    """Logical column types understood by the codec and synthesizer."""

    STRING = "STRING"
    BYTES = "BYTES"
    BOOL = "BOOL"
    INT64 = "INT64"
    FLOAT32 = "FLOAT32"
    FLOAT64 = "FLOAT64"
    NUMERIC = "NUMERIC"
    DATE = "DATE"
    TIMESTAMP = "TIMESTAMP"
    JSON = "JSON"
    PROTO = "PROTO"
    ARRAY_STRING = "ARRAY<STRING>"
    ARRAY_INT64 = "ARRAY<INT64>"
    ARRAY_FLOAT32 = "ARRAY<FLOAT32>"
    ARRAY_FLOAT64 = "ARRAY<FLOAT64>"


# Types whose DDL carries a (n|MAX) length
SIZED_TYPES = frozenset(
    {DataType.STRING.value, DataType.BYTES.value, DataType.ARRAY_STRING.value}
)


class OnDeleteAction(str, Enum):
    """Interleave on-delete behaviour, spelled as the catalog reports it."""

    UNSPECIFIED = "UNSPECIFIED"
    CASCADE = "CASCADE"
    NO_ACTION = "NO ACTION"


class DescriptorSource(str, Enum):
    """Where an external proto descriptor set lives."""

    UNSPECIFIED = "unspecified"
    GCS = "gcs"
    URL = "url"


class ProtoDescriptor(BaseModel):
    """Proto package of a PROTO column and where to find its descriptors."""

    model_config = ConfigDict(frozen=True)

    proto_package: Optional[str] = Field(None, description="Fully-qualified proto type")
    descriptor_set_path: Optional[str] = Field(
        None, description="Location of a serialized FileDescriptorSet"
    )
    descriptor_set_source: DescriptorSource = Field(
        DescriptorSource.UNSPECIFIED, description="Kind of descriptor location"
    )
    descriptor_set: Optional[bytes] = Field(
        None, exclude=True, repr=False, description="Fetched descriptor bytes"
    )

    @property
    def source(self) -> DescriptorSource:
        """Source kind, falling back to the location prefix."""
        if self.descriptor_set_source != DescriptorSource.UNSPECIFIED:
            return self.descriptor_set_source
        path = self.descriptor_set_path or ""
        if path.startswith("gcs:") or path.startswith("gs://"):
            return DescriptorSource.GCS
        if path.startswith("url:") or path.startswith("http"):
            return DescriptorSource.URL
        return DescriptorSource.UNSPECIFIED

    @property
    def location(self) -> str:
        """Descriptor location with any ``gcs:``/``url:`` prefix removed."""
        path = self.descriptor_set_path or ""
        for prefix in ("gcs:", "url:"):
            if path.startswith(prefix):
                return path[len(prefix):]
        return path

    @property
    def needs_fetch(self) -> bool:
        return bool(self.descriptor_set_path) and self.descriptor_set is None


_DEFAULTS: Dict[str, Any] = {
    "size": None,
    "precision": 0,
    "scale": 0,
    "required": False,
    "default_value": "",
    "is_primary_key": False,
    "is_computed": False,
    "computation_ddl": "",
    "auto_create_time": False,
    "auto_update_time": False,
    "auto_increment": False,
    "unique": False,
}


class Column(BaseModel):
    """A single column of a table."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Column name")
    type: Optional[str] = Field(None, description="Logical type, e.g. STRING or ARRAY<INT64>")
    size: Optional[int] = Field(None, description="Length for sized types; None means MAX")
    precision: Optional[int] = Field(None, description="Numeric precision")
    scale: Optional[int] = Field(None, description="Numeric scale")
    required: Optional[bool] = Field(None, description="NOT NULL constraint")
    default_value: Optional[str] = Field(None, description="Default value expression")
    is_primary_key: Optional[bool] = Field(None, description="Part of the primary key")
    is_computed: Optional[bool] = Field(None, description="Generated column")
    computation_ddl: Optional[str] = Field(None, description="Generation expression")
    auto_create_time: Optional[bool] = Field(None, description="Set on row creation")
    auto_update_time: Optional[bool] = Field(
        None, description="Commit timestamp on every write"
    )
    auto_increment: Optional[bool] = Field(None, description="Auto-incrementing value")
    unique: Optional[bool] = Field(None, description="Uniqueness flag")
    proto: Optional[ProtoDescriptor] = Field(None, description="Proto descriptor")

    @field_validator("type", mode="before")
    @classmethod
    def plain_type(cls, v):
        if isinstance(v, Enum):
            return v.value
        return v

    def resolve(self, field: str) -> Any:
        """Get a field value with the default applied when unset."""
        value = getattr(self, field)
        if value is None:
            return _DEFAULTS.get(field)
        return value

    @property
    def proto_package(self) -> Optional[str]:
        return self.proto.proto_package if self.proto else None

    @property
    def is_sized(self) -> bool:
        return self.type in SIZED_TYPES


class Interleave(BaseModel):
    """Parent/child grouping of a table."""

    model_config = ConfigDict(frozen=True)

    parent: str = Field(..., description="Parent table id")
    on_delete: OnDeleteAction = Field(
        OnDeleteAction.UNSPECIFIED, description="Action on parent row deletion"
    )


class Table(BaseModel):
    """A table: fully-qualified name, ordered columns and optional interleave."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(
        ...,
        description="projects/{p}/instances/{i}/databases/{d}/tables/{t}",
    )
    columns: List[Column] = Field(default_factory=list, description="Ordered columns")
    interleave: Optional[Interleave] = Field(None, description="Parent table grouping")

    def _part(self, group: str) -> str:
        match = TABLE_NAME_PATTERN.match(self.name)
        if not match:
            raise ValidationError(f"Invalid table name: {self.name}", path="table.name")
        return match.group(group)

    @property
    def project_id(self) -> str:
        return self._part("project")

    @property
    def instance_id(self) -> str:
        return self._part("instance")

    @property
    def database_id(self) -> str:
        return self._part("database")

    @property
    def table_id(self) -> str:
        return self._part("table")

    @property
    def database(self) -> str:
        """Fully-qualified database path."""
        return self.name.rsplit("/tables/", 1)[0]

    @property
    def primary_key_columns(self) -> List[str]:
        """Primary key column names in schema order."""
        return [c.name for c in self.columns if c.resolve("is_primary_key")]

    def column(self, name: str) -> Optional[Column]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    @classmethod
    def from_declaration(cls, data: Dict[str, Any], database_path: str) -> "Table":
        """Build a table from a declaration mapping.

        The mapping carries either a fully-qualified ``name`` or a bare
        ``table`` id, which is placed inside ``database_path``.
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Table declaration must be a mapping")

        data = dict(data)
        table_id = data.pop("table", None)
        if "name" not in data:
            if not table_id:
                raise ConfigurationError("Table declaration needs 'table' or 'name'")
            data["name"] = f"{database_path}/tables/{table_id}"

        try:
            return cls(**data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid table declaration: {e}")


def load_table_declaration(path: Union[str, Path], database_path: str) -> Table:
    """Load a table declaration from a YAML file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Declaration file not found: {path}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in declaration file: {e}")

    return Table.from_declaration(data, database_path)


def validate_table(table: Table) -> None:
    """Check a declared table before any remote call.

    Raises:
        ValidationError: naming the first offending path.
    """
    if not TABLE_NAME_PATTERN.match(table.name):
        raise ValidationError(f"Invalid table name: {table.name}", path="table.name")
    if not IDENTIFIER_PATTERN.match(table.table_id):
        raise ValidationError(
            f"Invalid table id: {table.table_id}", path="table.name"
        )
    if table.interleave and not IDENTIFIER_PATTERN.match(table.interleave.parent):
        raise ValidationError(
            f"Invalid parent table id: {table.interleave.parent}",
            path="table.interleave.parent",
        )
    if not table.columns:
        raise ValidationError("Table must have at least one column", path="table.schema")

    seen = set()
    for i, column in enumerate(table.columns):
        path = f"table.schema.columns[{i}]"
        if not IDENTIFIER_PATTERN.match(column.name or ""):
            raise ValidationError(
                f"Invalid column name: {column.name!r}", path=f"{path}.name"
            )
        if column.name in seen:
            raise ValidationError(
                f"Duplicate column name: {column.name}", path=f"{path}.name"
            )
        seen.add(column.name)

        if not column.type:
            raise ValidationError(
                f"Column '{column.name}' has no type", path=f"{path}.type"
            )
        if column.type == DataType.PROTO and not column.proto_package:
            raise ValidationError(
                f"Proto column '{column.name}' requires a proto package",
                path=f"{path}.proto.proto_package",
            )
        if column.resolve("is_computed") and not column.computation_ddl:
            raise ValidationError(
                f"Computed column '{column.name}' requires a computation expression",
                path=f"{path}.computation_ddl",
            )
        if column.size is not None and column.size <= 0:
            raise ValidationError(
                f"Column '{column.name}' size must be positive",
                path=f"{path}.size",
            )
