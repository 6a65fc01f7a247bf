"""Main CLI entry point for sqlitekv.

Provides commands to inspect and modify a store from the shell.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, TypeVar

import click
from rich.console import Console
from rich.table import Table

from sqlitekv.cli import bench
from sqlitekv.config import JournalMode, StorageMode, StoreConfig, load_config_from_env
from sqlitekv.errors import KVStoreError
from sqlitekv.observability.logging import bind_store_context, setup_logging
from sqlitekv.store import SQLiteKV

console = Console()

T = TypeVar("T")


def parse_value(raw: str) -> Any:
    """Parse a CLI value: JSON when it parses, otherwise the plain string.

    Examples:
        '{"a": 1}' -> {"a": 1}, '42' -> 42, 'hello' -> "hello"
    """
    try:
        value = json.loads(raw)
    except ValueError:
        return raw
    return raw if value is None else value


@asynccontextmanager
async def open_store(config: StoreConfig) -> AsyncIterator[SQLiteKV]:
    """Open a store for one command.

    Yields:
        Initialized SQLiteKV, closed on exit
    """
    async with SQLiteKV(config=config) as kv:
        yield kv


def run_with_store(ctx: click.Context, action: Callable[[SQLiteKV], Awaitable[T]]) -> T:
    """Run an async action against the configured store.

    Raises:
        click.ClickException: If the store reports an error
    """
    config: StoreConfig = ctx.obj["config"]

    async def _run() -> T:
        async with open_store(config) as kv:
            return await action(kv)

    try:
        return asyncio.run(_run())
    except KVStoreError as e:
        raise click.ClickException(e.message)


@click.group()
@click.version_option(version="0.1.0", prog_name="sqlitekv")
@click.option("--db", "filename", type=str, help="Database file (default: SQLITEKV_FILENAME or database.sqlite)")
@click.option("--table", "table_name", type=str, help="Table name (default: kv_store)")
@click.option(
    "--mode",
    "storage_mode",
    type=click.Choice([m.value for m in StorageMode], case_sensitive=False),
    help="Storage mode",
)
@click.option(
    "--journal-mode",
    type=click.Choice([m.value for m in JournalMode], case_sensitive=False),
    help="Journal mode applied on open",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Log level",
)
@click.pass_context
def cli(
    ctx: click.Context,
    filename: Optional[str],
    table_name: Optional[str],
    storage_mode: Optional[str],
    journal_mode: Optional[str],
    log_level: str,
) -> None:
    """sqlitekv - a key-value store on SQLite."""
    setup_logging(log_level=log_level, json_logs=False)

    try:
        base = load_config_from_env(filename)
        overrides = {
            "table_name": table_name,
            "storage_mode": storage_mode,
            "journal_mode": journal_mode,
        }
        config = StoreConfig(
            **{
                **base.model_dump(),
                **{k: v for k, v in overrides.items() if v is not None},
            }
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    bind_store_context(db=config.filename, table=config.table_name)
    ctx.obj = {"config": config}


@cli.command(name="get")
@click.argument("key")
@click.pass_context
def get_command(ctx: click.Context, key: str) -> None:
    """Print the value of KEY as JSON.

    Examples:
        sqlitekv get user:1
    """
    value = run_with_store(ctx, lambda kv: kv.get(key))
    if value is None:
        raise click.ClickException(f"Key '{key}' not found")
    click.echo(json.dumps(value, indent=2, ensure_ascii=False))


@cli.command(name="set")
@click.argument("key")
@click.argument("value")
@click.option("--ttl", type=float, help="Expire after this many seconds")
@click.option("--one-time", is_flag=True, help="Delete the entry after its first read")
@click.pass_context
def set_command(
    ctx: click.Context, key: str, value: str, ttl: Optional[float], one_time: bool
) -> None:
    """Store VALUE under KEY (JSON if it parses, otherwise a string).

    Examples:
        sqlitekv set greeting hello
        sqlitekv set user:1 '{"name": "Ada"}'
        sqlitekv set session:9 token --ttl 60 --one-time
    """
    parsed = parse_value(value)

    async def _set(kv: SQLiteKV) -> None:
        if ttl is None:
            await kv.set(key, parsed, one_time=one_time)
        else:
            await kv.setex(key, ttl, parsed, one_time=one_time)

    run_with_store(ctx, _set)
    console.print(f"[green]✓[/green] {key}")


@cli.command(name="delete")
@click.argument("key")
@click.pass_context
def delete_command(ctx: click.Context, key: str) -> None:
    """Delete KEY."""
    if run_with_store(ctx, lambda kv: kv.delete(key)):
        console.print(f"[green]✓ Deleted[/green] {key}")
    else:
        console.print(f"[yellow]Key '{key}' not found[/yellow]")


@cli.command(name="keys")
@click.argument("pattern", required=False)
@click.pass_context
def keys_command(ctx: click.Context, pattern: Optional[str]) -> None:
    """List keys, optionally matching a LIKE PATTERN ("%" and "_" wildcards).

    Examples:
        sqlitekv keys
        sqlitekv keys 'user:%'
    """
    for key in run_with_store(ctx, lambda kv: kv.keys(pattern)):
        click.echo(key)


@cli.command(name="ttl")
@click.argument("key")
@click.pass_context
def ttl_command(ctx: click.Context, key: str) -> None:
    """Print milliseconds until KEY expires ("none" without expiry)."""
    remaining = run_with_store(ctx, lambda kv: kv.ttl(key))
    click.echo("none" if remaining is None else str(remaining))


@cli.command(name="info")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format (table or json)",
)
@click.pass_context
def info_command(ctx: click.Context, output_format: str) -> None:
    """Show database path, journal mode, size and key count."""
    info = run_with_store(ctx, lambda kv: kv.get_info())

    if output_format == "json":
        click.echo(info.model_dump_json(indent=2))
        return

    table = Table(title="Store Info")
    table.add_column("Property", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    table.add_row("Path", info.path)
    table.add_row("Filename", info.filename)
    table.add_row("Table", info.table_name)
    table.add_row("Journal mode", info.journal_mode.value)
    table.add_row("Size", f"{info.size_bytes} bytes")
    table.add_row("Keys", str(info.key_count))
    console.print(table)


@cli.command(name="export")
@click.argument("path", required=False, type=click.Path(dir_okay=False))
@click.pass_context
def export_command(ctx: click.Context, path: Optional[str]) -> None:
    """Export all entries to a JSON file (default: database_export.json)."""
    if not run_with_store(ctx, lambda kv: kv.convert_to_json(path)):
        raise click.ClickException(f"Could not write export to {path or 'database_export.json'}")
    console.print(f"[green]✓ Exported[/green] {path or 'database_export.json'}")


@cli.command(name="clear")
@click.confirmation_option(prompt="Delete every entry?")
@click.pass_context
def clear_command(ctx: click.Context) -> None:
    """Delete every entry."""
    run_with_store(ctx, lambda kv: kv.clear())
    console.print("[green]✓ Cleared[/green]")


cli.add_command(bench.bench)


def main() -> None:
    """CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
