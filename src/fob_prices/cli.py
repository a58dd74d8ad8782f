"""Click-based CLI for fob-prices.

Thin wrapper around library modules. Zero business logic: every operation
delegates to the ingestion package.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta

import click
from rich.console import Console
from rich.table import Table

from fob_prices.core.exceptions import ConfigError, StorageError
from fob_prices.core.logging_config import configure_logging

console = Console(stderr=True)
logger = logging.getLogger("fob_prices.cli")

_RULE = "-" * 61


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from fob_prices.core import load_config

        try:
            ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
        except ConfigError as exc:
            console.print(f"[red]Configuration error: {exc}[/red]")
            raise SystemExit(1) from exc
    return ctx.obj["config"]


async def _create_store_async(config):
    """Create and initialize storage from config."""
    from fob_prices.ingestion import create_store

    return await create_store(config.storage)


def _parse_day(value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise click.BadParameter(f"expected YYYY-MM-DD, got {value!r}") from exc


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="FOB_PRICES_CONFIG",
    default=None,
    help="Path to fob-prices.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging (request URLs, response excerpts).",
)
@click.version_option(package_name="fob-prices")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """FOB prices: incremental import of FOB reference prices."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    configure_logging(verbose=verbose, console=console)


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--until",
    "until",
    type=str,
    default=None,
    help="Last day to import (YYYY-MM-DD). Default: today.",
)
@click.option(
    "--max-retries",
    type=click.IntRange(min=0),
    default=None,
    help="Retries per day after the first attempt. Default: from config.",
)
@click.pass_context
def ingest(ctx: click.Context, until: str | None, max_retries: int | None) -> None:
    """Import FOB prices from the day after the latest stored date."""
    config = _load_config(ctx)
    end = _parse_day(until)
    retries = config.upstream.max_retries if max_retries is None else max_retries

    async def _run():
        from fob_prices.ingestion import FobClient, IngestionRunner

        store = await _create_store_async(config)
        try:
            async with FobClient(config.upstream) as client:
                runner = IngestionRunner(
                    client,
                    store,
                    epoch_date=config.ingest.epoch_date,
                    max_retries=retries,
                )
                return await runner.run(today=end)
        finally:
            await store.close()

    console.print(_RULE)
    console.print("Starting FOB price import...")
    try:
        summary = _run_async(_run())
    except StorageError as exc:
        logger.error("Fatal storage error: %s", exc)
        console.print(f"[red]Fatal storage error: {exc}[/red]")
        raise SystemExit(1) from exc

    console.print(
        f"[green]✓[/green] Import completed. Rows inserted: {summary.inserted}"
        + (f" ({summary.days_failed} days failed)" if summary.days_failed else "")
    )
    if summary.days_failed and ctx.obj["verbose"]:
        for day in summary.failed_days:
            console.print(f"[yellow]  failed: {day.isoformat()}[/yellow]")
    console.print(_RULE)


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show storage status and the next day to import."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            return await _gather_stats(store, config.ingest.epoch_date)
        finally:
            await store.close()

    try:
        stats = _run_async(_run())
    except StorageError as exc:
        console.print(f"[red]Fatal storage error: {exc}[/red]")
        raise SystemExit(1) from exc

    table = Table(title="FOB Prices Status")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Storage backend", config.storage.backend.value)
    table.add_row("Table", config.storage.table)
    table.add_row("Connection", "ok" if stats["healthy"] else "[red]unavailable[/red]")
    table.add_section()
    table.add_row("Stored rows", str(stats["total_rows"]))
    table.add_row("Latest stored date", stats["latest_date"])
    table.add_row("Next import starts", stats["next_start"])

    console.print(table)


async def _gather_stats(store, epoch_date: date) -> dict:
    """Gather basic statistics from storage."""
    healthy = await store.health_check()
    total = await store.count_rows()
    latest = await store.get_max_date()
    next_start = epoch_date if latest is None else latest.date() + timedelta(days=1)
    return {
        "healthy": healthy,
        "total_rows": total,
        "latest_date": latest.date().isoformat() if latest else "N/A",
        "next_start": next_start.isoformat(),
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
