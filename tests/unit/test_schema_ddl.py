"""
Tests for spanform.schema.ddl module.
"""

import pytest

from spanform.exceptions import ValidationError
from spanform.schema.ddl import (
    add_column_statement,
    alter_column_statement,
    column_fragment,
    create_statement,
    drop_column_statement,
    drop_statement,
    encode_type,
    interleave_clause,
    proto_bundle_statement,
    type_token,
)
from spanform.schema.model import Column, DataType, Interleave, OnDeleteAction, ProtoDescriptor


class TestColumnFragment:
    """Test single column definitions."""

    def test_required_scalar(self):
        """Test NOT NULL follows the type."""
        column = Column(name="id", type="INT64", required=True)
        assert column_fragment(column) == "`id` INT64 NOT NULL"

    def test_sized_string(self):
        """Test STRING carries its length."""
        assert column_fragment(Column(name="name", type="STRING", size=255)) == (
            "`name` STRING(255)"
        )

    def test_unsized_string_is_max(self):
        """Test STRING without a size is STRING(MAX)."""
        assert column_fragment(Column(name="bio", type="STRING")) == "`bio` STRING(MAX)"

    def test_bytes_size(self):
        """Test BYTES carries its length."""
        assert column_fragment(Column(name="hash", type="BYTES", size=32)) == (
            "`hash` BYTES(32)"
        )

    def test_string_array_size_inside_brackets(self):
        """Test the ARRAY<STRING> size goes before the closing bracket."""
        column = Column(name="tags", type="ARRAY<STRING>", size=10)
        assert column_fragment(column) == "`tags` ARRAY<STRING(10)>"

    def test_proto_column_uses_quoted_package(self):
        """Test PROTO columns are typed by their package."""
        column = Column(
            name="payload",
            type="PROTO",
            proto=ProtoDescriptor(proto_package="examples.Payload"),
        )
        assert column_fragment(column) == "`payload` `examples.Payload`"

    def test_proto_column_without_package_fails(self):
        """Test a PROTO column without package is rejected."""
        with pytest.raises(ValidationError):
            column_fragment(Column(name="payload", type="PROTO"))

    def test_computed_column(self):
        """Test generated columns carry their expression."""
        column = Column(
            name="full_name",
            type="STRING",
            is_computed=True,
            computation_ddl="CONCAT(first, ' ', last)",
        )
        assert column_fragment(column) == (
            "`full_name` STRING(MAX) AS (CONCAT(first, ' ', last))"
        )

    def test_computed_column_without_expression_fails(self):
        """Test a computed column needs an expression."""
        with pytest.raises(ValidationError):
            column_fragment(Column(name="x", type="INT64", is_computed=True))

    def test_default_value(self):
        """Test defaults are wrapped in parentheses."""
        column = Column(name="status", type="STRING", size=10, default_value="'new'")
        assert column_fragment(column) == "`status` STRING(10) DEFAULT ('new')"

    def test_clause_order(self):
        """Test NOT NULL, DEFAULT and OPTIONS appear in a fixed order."""
        column = Column(
            name="updated_at",
            type="TIMESTAMP",
            required=True,
            default_value="CURRENT_TIMESTAMP()",
            auto_update_time=True,
        )
        assert column_fragment(column) == (
            "`updated_at` TIMESTAMP NOT NULL DEFAULT (CURRENT_TIMESTAMP()) "
            "OPTIONS (allow_commit_timestamp=true)"
        )

    def test_auto_update_time_false_is_emitted(self):
        """Test an explicit false commit-timestamp option is written."""
        column = Column(name="ts", type="TIMESTAMP", auto_update_time=False)
        assert column_fragment(column) == (
            "`ts` TIMESTAMP OPTIONS (allow_commit_timestamp=false)"
        )

    def test_auto_update_time_unset_has_no_options(self):
        """Test no OPTIONS clause when the flag is not set."""
        assert column_fragment(Column(name="ts", type="TIMESTAMP")) == "`ts` TIMESTAMP"

    def test_auto_create_time_not_in_ddl(self):
        """Test auto_create_time never produces an OPTIONS clause."""
        column = Column(name="created_at", type="TIMESTAMP", auto_create_time=True)
        assert column_fragment(column) == "`created_at` TIMESTAMP"

    def test_options_only_for_timestamps(self):
        """Test auto_update_time is ignored on non-TIMESTAMP columns."""
        column = Column(name="n", type="INT64", auto_update_time=True)
        assert column_fragment(column) == "`n` INT64"

    def test_enum_type_value_accepted(self):
        """Test DataType members can be used as column types."""
        column = Column(name="n", type=DataType.FLOAT64)
        assert type_token(column) == "FLOAT64"


class TestEncodeType:
    """Test catalog spellings."""

    def test_proto(self):
        """Test PROTO columns are spelled PROTO<pkg>."""
        column = Column(
            name="p", type="PROTO", proto=ProtoDescriptor(proto_package="a.B")
        )
        assert encode_type(column) == "PROTO<a.B>"

    def test_string_array_max(self):
        """Test unsized string arrays."""
        assert encode_type(Column(name="t", type="ARRAY<STRING>")) == (
            "ARRAY<STRING(MAX)>"
        )


class TestCreateStatement:
    """Test CREATE TABLE synthesis."""

    def test_users_table(self, make_table):
        """Test a keyed table with two columns."""
        table = make_table(
            [
                Column(name="id", type="INT64", is_primary_key=True),
                Column(name="name", type="STRING", size=255),
            ]
        )
        assert create_statement(table) == (
            "CREATE TABLE `users` (`id` INT64, `name` STRING(255)) PRIMARY KEY (id)"
        )

    def test_composite_key_in_schema_order(self, make_table):
        """Test primary key columns follow schema order."""
        table = make_table(
            [
                Column(name="b", type="INT64", is_primary_key=True),
                Column(name="v", type="STRING"),
                Column(name="a", type="INT64", is_primary_key=True),
            ],
            table_id="pairs",
        )
        assert create_statement(table).endswith("PRIMARY KEY (b, a)")

    def test_no_primary_key(self, make_table):
        """Test tables without key columns get no PRIMARY KEY clause."""
        table = make_table([Column(name="v", type="INT64")], table_id="t")
        assert create_statement(table) == "CREATE TABLE `t` (`v` INT64)"

    def test_interleave_cascade(self, make_table):
        """Test a cascading interleave clause."""
        table = make_table(
            [
                Column(name="customer_id", type="INT64", required=True, is_primary_key=True),
                Column(name="order_id", type="INT64", required=True, is_primary_key=True),
            ],
            table_id="orders",
            interleave=Interleave(parent="customers", on_delete=OnDeleteAction.CASCADE),
        )
        assert create_statement(table) == (
            "CREATE TABLE `orders` (`customer_id` INT64 NOT NULL, "
            "`order_id` INT64 NOT NULL) PRIMARY KEY (customer_id, order_id), "
            "INTERLEAVE IN PARENT customers ON DELETE CASCADE"
        )


class TestStatements:
    """Test the remaining statement helpers."""

    @pytest.mark.parametrize(
        "action", [OnDeleteAction.UNSPECIFIED, OnDeleteAction.NO_ACTION]
    )
    def test_interleave_without_cascade(self, action):
        """Test unspecified and NO ACTION produce a plain INTERLEAVE IN."""
        clause = interleave_clause(Interleave(parent="customers", on_delete=action))
        assert clause == "INTERLEAVE IN customers"

    def test_interleave_from_catalog_spelling(self):
        """Test actions spelled as the catalog reports them."""
        interleave = Interleave(parent="customers", on_delete="CASCADE")
        assert interleave_clause(interleave) == (
            "INTERLEAVE IN PARENT customers ON DELETE CASCADE"
        )

    def test_drop_table(self, users_table):
        """Test DROP TABLE."""
        assert drop_statement(users_table) == "DROP TABLE `users`"

    def test_column_statements(self):
        """Test ADD, DROP and ALTER COLUMN statements."""
        column = Column(name="email", type="STRING", size=320)
        assert add_column_statement("users", column) == (
            "ALTER TABLE `users` ADD COLUMN `email` STRING(320)"
        )
        assert drop_column_statement("users", "email") == (
            "ALTER TABLE `users` DROP COLUMN `email`"
        )
        assert alter_column_statement("users", "`email` DROP DEFAULT") == (
            "ALTER TABLE `users` ALTER COLUMN `email` DROP DEFAULT"
        )

    def test_proto_bundle_statements(self):
        """Test CREATE and ALTER PROTO BUNDLE."""
        assert proto_bundle_statement("a.B") == "CREATE PROTO BUNDLE (`a.B`)"
        assert proto_bundle_statement("a.B", "INSERT") == (
            "ALTER PROTO BUNDLE INSERT (`a.B`)"
        )
