"""
Command-line interface for spanform.
"""

import asyncio
import sys
from functools import wraps
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table as RichTable

from . import __version__
from .config import SpanformConfig
from .database.connection import SpannerDatabase
from .exceptions import ConfigurationError, SpanformError
from .logging_setup import setup_logging
from .schema import ddl, differ
from .schema.descriptors import DescriptorFetcher
from .schema.metadata import ColumnMetadataStore
from .schema.model import Table, load_table_declaration, validate_table
from .schema.reconciler import TableReconciler


console = Console()

LOCAL_DATABASE = "projects/local/instances/local/databases/local"


def handle_errors(func):
    """Decorator to handle errors gracefully in CLI commands."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SpanformError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            sys.exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            sys.exit(0)
        except Exception as e:
            console.print(f"[red]Unexpected error:[/red] {e}")
            if "--debug" in sys.argv:
                import traceback
                traceback.print_exc()
            sys.exit(1)
    return wrapper


def _load_config(path: str, debug: bool) -> SpanformConfig:
    config = SpanformConfig.from_yaml(path)
    setup_logging(config.logging, debug=debug)
    return config


def _build_reconciler(config: SpanformConfig) -> TableReconciler:
    database = SpannerDatabase(config.spanner)
    return TableReconciler(
        database,
        metadata_store=ColumnMetadataStore(database, config.metadata),
        descriptor_fetcher=DescriptorFetcher(config.descriptors),
    )


config_option = click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)


@click.group()
@click.version_option(__version__)
@click.option(
    "--debug", is_flag=True, help="Enable debug mode"
)
@click.pass_context
def main(ctx, debug):
    """spanform: declarative Cloud Spanner table schema reconciliation."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@main.command()
@click.argument("declaration", type=click.Path(exists=True))
@click.option(
    "--database",
    default=LOCAL_DATABASE,
    show_default=True,
    help="Database path the table belongs to",
)
@handle_errors
def validate(declaration: str, database: str):
    """Validate a table declaration and show its CREATE statement."""
    table = load_table_declaration(declaration, database)
    validate_table(table)

    console.print(f"[green]✓[/green] Table declaration is valid: {table.table_id}")
    _display_table(table)
    console.print(f"\n{ddl.create_statement(table)}", markup=False, soft_wrap=True)


@main.command()
@click.argument("declaration", type=click.Path(exists=True))
@click.option(
    "--observed",
    type=click.Path(exists=True),
    help="Declaration of the current table; diff offline instead of querying",
)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    help="Configuration file path",
)
@click.pass_context
@handle_errors
def plan(ctx, declaration: str, observed: Optional[str], config: Optional[str]):
    """Show the statements needed to converge a table, without applying them."""
    if observed:
        desired_table = load_table_declaration(declaration, LOCAL_DATABASE)
        observed_table = load_table_declaration(observed, LOCAL_DATABASE)
        validate_table(desired_table)
        result = differ.plan(desired_table, observed_table)
        _display_plan(result)
        return

    if not config:
        raise ConfigurationError("Either --observed or --config is required")

    spanform_config = _load_config(config, ctx.obj["debug"])
    desired_table = load_table_declaration(
        declaration, spanform_config.spanner.database_path
    )

    async def run_plan():
        reconciler = _build_reconciler(spanform_config)
        async with reconciler:
            return await reconciler.plan_update(desired_table)

    _display_plan(asyncio.run(run_plan()))


@main.command()
@click.argument("table_id")
@config_option
@click.pass_context
@handle_errors
def get(ctx, table_id: str, config: str):
    """Show the live schema of a table."""
    spanform_config = _load_config(config, ctx.obj["debug"])
    name = spanform_config.spanner.table_name(table_id)

    async def run_get():
        reconciler = _build_reconciler(spanform_config)
        async with reconciler:
            return await reconciler.get_table(name)

    _display_table(asyncio.run(run_get()))


@main.command()
@click.argument("declaration", type=click.Path(exists=True))
@config_option
@click.option(
    "--allow-missing",
    is_flag=True,
    help="Create the table if it does not exist",
)
@click.pass_context
@handle_errors
def apply(ctx, declaration: str, config: str, allow_missing: bool):
    """Converge a live table to its declaration."""
    spanform_config = _load_config(config, ctx.obj["debug"])
    desired_table = load_table_declaration(
        declaration, spanform_config.spanner.database_path
    )
    console.print(f"[blue]Applying {desired_table.table_id}...[/blue]")

    async def run_apply():
        reconciler = _build_reconciler(spanform_config)
        async with reconciler:
            return await reconciler.update_table(
                desired_table, allow_missing=allow_missing
            )

    table = asyncio.run(run_apply())
    console.print(f"[green]✓[/green] Table {table.table_id} is up to date")
    _display_table(table)


@main.command()
@click.argument("declaration", type=click.Path(exists=True))
@config_option
@click.pass_context
@handle_errors
def create(ctx, declaration: str, config: str):
    """Create a table from its declaration."""
    spanform_config = _load_config(config, ctx.obj["debug"])
    desired_table = load_table_declaration(
        declaration, spanform_config.spanner.database_path
    )

    async def run_create():
        reconciler = _build_reconciler(spanform_config)
        async with reconciler:
            return await reconciler.create_table(desired_table)

    table = asyncio.run(run_create())
    console.print(f"[green]✓[/green] Created table {table.table_id}")
    _display_table(table)


@main.command()
@click.argument("table_id")
@config_option
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
@handle_errors
def delete(ctx, table_id: str, config: str, yes: bool):
    """Drop a table and its column metadata."""
    if not yes and not click.confirm(f"Drop table {table_id}?"):
        console.print("[yellow]Aborted[/yellow]")
        return

    spanform_config = _load_config(config, ctx.obj["debug"])
    name = spanform_config.spanner.table_name(table_id)

    async def run_delete():
        reconciler = _build_reconciler(spanform_config)
        async with reconciler:
            await reconciler.delete_table(name)

    asyncio.run(run_delete())
    console.print(f"[green]✓[/green] Dropped table {table_id}")


def _display_table(table: Table):
    """Display the columns of a table."""
    view = RichTable(title=f"Table {table.table_id}")
    view.add_column("Column", style="cyan")
    view.add_column("Type", style="magenta")
    view.add_column("Required", style="green")
    view.add_column("Default", style="yellow")
    view.add_column("Key", style="red")

    for column in table.columns:
        view.add_row(
            column.name,
            ddl.encode_type(column) if column.type else "-",
            "yes" if column.resolve("required") else "no",
            column.resolve("default_value") or "",
            "PK" if column.resolve("is_primary_key") else "",
        )

    console.print(view)
    if table.interleave:
        console.print(f"Interleaved in {table.interleave.parent}")


def _display_plan(result: differ.TablePlan):
    """Display the statements of a plan."""
    if result.is_empty:
        console.print(f"[green]✓[/green] No changes needed for {result.table_id}")
        return

    console.print(f"[blue]Plan for {result.table_id}[/blue]")
    for statement in result.statements:
        console.print(f"  {statement}", markup=False, soft_wrap=True)
    console.print(
        f"\n{len(result.dropped_columns)} to drop, "
        f"{len(result.added_columns)} to add, "
        f"{len(result.altered_columns)} to alter"
    )


if __name__ == "__main__":
    main()
