"""
Schema differ for spanform.

Compares a desired table against an observed one and plans the ordered
DDL statements that converge the two.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from . import ddl
from .model import Column, DescriptorSource, Table


_COMPARED_FIELDS = (
    "type",
    "is_primary_key",
    "is_computed",
    "computation_ddl",
    "auto_create_time",
    "auto_update_time",
    "size",
    "required",
    "default_value",
)


def _proto_key(column: Column):
    proto = column.proto
    if proto is None:
        return ("", "", DescriptorSource.UNSPECIFIED.value)
    return (
        proto.proto_package or "",
        proto.descriptor_set_path or "",
        DescriptorSource(proto.descriptor_set_source).value,
    )


def compare(a: Column, b: Column) -> bool:
    """Check whether two columns are structurally equal after defaults."""
    if a.name != b.name:
        return False
    for name in _COMPARED_FIELDS:
        if a.resolve(name) != b.resolve(name):
            return False
    return _proto_key(a) == _proto_key(b)


def tables_equal(a: Table, b: Table) -> bool:
    """Check name, ordered columns and interleave."""
    if a.name != b.name or len(a.columns) != len(b.columns):
        return False
    if not all(compare(x, y) for x, y in zip(a.columns, b.columns)):
        return False
    return interleave_key(a) == interleave_key(b)


def interleave_key(table: Table):
    if table.interleave is None:
        return None
    return (table.interleave.parent, table.interleave.on_delete)


def alter_column_clauses(desired: Column, observed: Column) -> List[str]:
    """ALTER COLUMN clauses turning ``observed`` into ``desired``.

    At most two clauses: one restating the type (size and NOT NULL), one
    setting or dropping the default. Relaxing NOT NULL is not emitted.
    """
    clauses = []

    type_changed = False
    if desired.is_sized and desired.resolve("size") != observed.resolve("size"):
        type_changed = True
    if desired.resolve("required") and not observed.resolve("required"):
        type_changed = True

    if type_changed:
        clause = f"{ddl.quote(desired.name)} {ddl.type_token(desired)}"
        if desired.resolve("required"):
            clause += " NOT NULL"
        clauses.append(clause)

    wanted = desired.resolve("default_value")
    current = observed.resolve("default_value")
    if current and not wanted:
        clauses.append(f"{ddl.quote(desired.name)} DROP DEFAULT")
    elif wanted and wanted != current:
        clauses.append(f"{ddl.quote(desired.name)} SET DEFAULT ({wanted})")

    return clauses


@dataclass
class TablePlan:
    """Ordered statements converging an observed table to a desired one."""

    table_id: str
    drop_statements: List[str] = field(default_factory=list)
    add_statements: List[str] = field(default_factory=list)
    alter_statements: List[str] = field(default_factory=list)
    dropped_columns: List[str] = field(default_factory=list)
    added_columns: List[str] = field(default_factory=list)
    altered_columns: List[str] = field(default_factory=list)
    create_statement: Optional[str] = None

    @property
    def change_statements(self) -> List[str]:
        """Adds followed by alters, applied after the drop batch."""
        return self.add_statements + self.alter_statements

    @property
    def statements(self) -> List[str]:
        if self.create_statement:
            return [self.create_statement]
        return self.drop_statements + self.change_statements

    @property
    def is_empty(self) -> bool:
        return not self.statements


def plan(desired: Table, observed: Table) -> TablePlan:
    """Plan column drops, adds and alterations for an existing table."""
    table_id = observed.table_id
    result = TablePlan(table_id=table_id)

    desired_by_name = {c.name: c for c in desired.columns}
    observed_by_name = {c.name: c for c in observed.columns}

    # Computed columns may reference the columns they derive from
    dropped = [c for c in observed.columns if c.name not in desired_by_name]
    dropped.sort(key=lambda c: not c.resolve("is_computed"))
    for column in dropped:
        result.drop_statements.append(ddl.drop_column_statement(table_id, column.name))
        result.dropped_columns.append(column.name)

    for column in desired.columns:
        existing = observed_by_name.get(column.name)
        if existing is None:
            result.add_statements.append(ddl.add_column_statement(table_id, column))
            result.added_columns.append(column.name)
            continue
        if compare(column, existing):
            continue
        clauses = alter_column_clauses(column, existing)
        for clause in clauses:
            result.alter_statements.append(ddl.alter_column_statement(table_id, clause))
        if clauses:
            result.altered_columns.append(column.name)

    return result


def plan_create(desired: Table) -> TablePlan:
    """Plan for a table that does not exist yet."""
    return TablePlan(
        table_id=desired.table_id,
        added_columns=[c.name for c in desired.columns],
        create_statement=ddl.create_statement(desired),
    )
