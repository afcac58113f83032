"""
DDL synthesis for spanform.

Builds GoogleSQL ``CREATE TABLE``, ``ALTER TABLE`` and ``DROP TABLE``
statements from table and column values.
"""

from typing import Optional

from ..exceptions import ValidationError
from .model import Column, DataType, Interleave, OnDeleteAction, Table


def quote(identifier: str) -> str:
    return f"`{identifier}`"


def _size_suffix(column: Column) -> str:
    size = column.resolve("size")
    return f"({size})" if size is not None else "(MAX)"


def _sized(base: str, column: Column) -> str:
    if column.type == DataType.ARRAY_STRING:
        return base[:-1] + _size_suffix(column) + ">"
    return base + _size_suffix(column)


def type_token(column: Column) -> str:
    """Type as written in a column definition.

    PROTO columns are typed by their back-quoted proto package.
    """
    if column.type == DataType.PROTO:
        if not column.proto_package:
            raise ValidationError(
                f"Proto column '{column.name}' requires a proto package",
                path=f"{column.name}.proto.proto_package",
            )
        return quote(column.proto_package)
    if column.is_sized:
        return _sized(column.type, column)
    return column.type


def encode_type(column: Column) -> str:
    """Type as the catalog spells it, e.g. ``PROTO<pkg.Msg>``."""
    if column.type == DataType.PROTO:
        return f"PROTO<{column.proto_package}>"
    if column.is_sized:
        return _sized(column.type, column)
    return column.type


def column_fragment(column: Column) -> str:
    """Full column definition used by CREATE TABLE and ADD COLUMN."""
    parts = [quote(column.name), " ", type_token(column)]

    if column.resolve("required"):
        parts.append(" NOT NULL")

    if column.resolve("is_computed"):
        if not column.computation_ddl:
            raise ValidationError(
                f"Computed column '{column.name}' requires a computation expression",
                path=f"{column.name}.computation_ddl",
            )
        parts.append(f" AS ({column.computation_ddl})")

    # An explicitly empty default is still emitted on create
    if column.default_value is not None:
        parts.append(f" DEFAULT ({column.default_value})")

    # auto_create_time is tracked in the metadata store only
    if column.type == DataType.TIMESTAMP and column.auto_update_time is not None:
        flag = "true" if column.auto_update_time else "false"
        parts.append(f" OPTIONS (allow_commit_timestamp={flag})")

    return "".join(parts)


def interleave_clause(interleave: Interleave) -> str:
    action = OnDeleteAction(interleave.on_delete)
    if action in (OnDeleteAction.UNSPECIFIED, OnDeleteAction.NO_ACTION):
        return f"INTERLEAVE IN {interleave.parent}"
    return f"INTERLEAVE IN PARENT {interleave.parent} ON DELETE CASCADE"


def create_statement(table: Table) -> str:
    fragments = ", ".join(column_fragment(c) for c in table.columns)
    statement = f"CREATE TABLE {quote(table.table_id)} ({fragments})"

    primary_keys = table.primary_key_columns
    if primary_keys:
        keys = ", ".join(primary_keys)
        statement += f" PRIMARY KEY ({keys})"

    if table.interleave:
        statement += f", {interleave_clause(table.interleave)}"

    return statement


def drop_statement(table: Table) -> str:
    return f"DROP TABLE {quote(table.table_id)}"


def add_column_statement(table_id: str, column: Column) -> str:
    return f"ALTER TABLE {quote(table_id)} ADD COLUMN {column_fragment(column)}"


def drop_column_statement(table_id: str, column_name: str) -> str:
    return f"ALTER TABLE {quote(table_id)} DROP COLUMN {quote(column_name)}"


def alter_column_statement(table_id: str, clause: str) -> str:
    return f"ALTER TABLE {quote(table_id)} ALTER COLUMN {clause}"


def proto_bundle_statement(package: str, verb: Optional[str] = None) -> str:
    """CREATE PROTO BUNDLE, or ALTER PROTO BUNDLE INSERT/UPDATE when verb is set."""
    if verb is None:
        return f"CREATE PROTO BUNDLE ({quote(package)})"
    return f"ALTER PROTO BUNDLE {verb} ({quote(package)})"
