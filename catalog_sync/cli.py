"""Command-line interface for the catalog sync tool."""

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Annotated, Any

import structlog
import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from catalog_sync.client import PlatformClient
from catalog_sync.config import Config, load_document
from catalog_sync.orchestration import CatalogSyncOrchestrator

# Constants
MAX_ERRORS_TO_DISPLAY = 10

# Create Typer app
app = typer.Typer(
    name="catalog-sync",
    help="Sync catalog resources into a target project from a drafts document",
    add_completion=False,
)

console = Console()


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Setup structured logging.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json or text).
    """
    import logging

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level.upper())

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format.lower() == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _load_config(config_file: Path | None) -> Config:
    if config_file:
        return Config.from_file(config_file)
    return Config.from_env()


@app.command()
def sync(
    drafts_file: Annotated[
        Path,
        typer.Option(
            "--drafts",
            "-d",
            help="JSON or YAML document with states, productTypes, categories, products and inventoryEntries drafts",
        ),
    ],
    resources: Annotated[
        str,
        typer.Option(
            "--resources",
            "-r",
            help="Comma-separated list of resources to sync (all,states,product_types,categories,products,inventory_entries)",
        ),
    ] = "all",
    config_file: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (optional, uses environment variables by default)",
        ),
    ] = None,
    log_level: Annotated[
        str,
        typer.Option("--log-level", "-l", help="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"),
    ] = "INFO",
    log_format: Annotated[
        str,
        typer.Option("--log-format", "-f", help="Log format (json or text)"),
    ] = "json",
    results_file: Annotated[
        Path | None,
        typer.Option("--results", help="Write the sync summary to this JSON file"),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", "-n", help="Validate configuration and connectivity only"),
    ] = False,
) -> None:
    """Sync the drafts of a document into the target project.

    Resources not present in the document are never touched or deleted.

    Examples:
        catalog-sync sync --drafts catalog.yaml
        catalog-sync sync --drafts catalog.json --resources states,product_types
        catalog-sync sync --drafts catalog.json --dry-run
    """
    asyncio.run(
        _sync_main(
            drafts_file,
            resources,
            config_file,
            log_level,
            log_format,
            results_file,
            dry_run,
        )
    )


async def _sync_main(
    drafts_file: Path,
    resources: str,
    config_file: Path | None,
    log_level: str,
    log_format: str,
    results_file: Path | None,
    dry_run: bool,
) -> None:
    """Async implementation of the sync command."""
    setup_logging(log_level, log_format)
    logger = structlog.get_logger(__name__)

    try:
        config = _load_config(config_file)
        if resources != "all":
            config.resources = [r.strip() for r in resources.split(",")]
        config.logging.level = log_level
        config.logging.format = log_format

        document = load_document(drafts_file)

        logger.info(
            "Starting catalog sync",
            project=config.target.project_key,
            resources=config.selected_resources(),
            drafts_file=str(drafts_file),
            dry_run=dry_run,
        )

        async with PlatformClient(config.target, config.sync) as client:
            health = await client.health_check()
            logger.info("Connected to target project", **health)

            if dry_run:
                console.print("[yellow]DRY RUN MODE - No changes will be made[/yellow]")
                console.print(
                    f"[green]✓[/green] Connected to project {health['project_key']}"
                )
                return

            orchestrator = CatalogSyncOrchestrator(config, client)
            loop = asyncio.get_running_loop()
            try:
                loop.add_signal_handler(signal.SIGTERM, orchestrator.cancel)
            except NotImplementedError:
                logger.debug("Signal handlers are not supported on this platform")

            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task("Syncing catalog...", total=None)
                results = await orchestrator.sync_document(document)

        _display_results(results)

        if results_file:
            with open(results_file, "w") as f:
                json.dump(results, f, indent=2)
            console.print(f"Results saved to: {results_file}")

        if not results["success"]:
            console.print("\n[red]Sync finished with failures![/red]")
            sys.exit(1)
        console.print("\n[green]Sync completed successfully![/green]")

    except KeyboardInterrupt:
        console.print("\n[red]Sync interrupted by user[/red]")
        logger.info("Sync interrupted by user")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Sync failed: {e}[/red]")
        logger.error("Sync failed", error=str(e), exc_info=True)
        sys.exit(1)


def _display_results(results: dict[str, Any]) -> None:
    """Display sync results in a formatted table.

    Args:
        results: Summary returned by the orchestrator.
    """
    table = Table(title="Sync Results")
    table.add_column("Resource", style="cyan")
    table.add_column("Processed", justify="right")
    table.add_column("Created", justify="right", style="green")
    table.add_column("Updated", justify="right", style="blue")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Unresolved", justify="right", style="yellow")

    for name, stats in results["resources"].items():
        table.add_row(
            name,
            str(stats["processed"]),
            str(stats["created"]),
            str(stats["updated"]),
            str(stats["failed"]),
            str(stats["unresolved"]),
        )

    summary = results["summary"]
    table.add_row(
        "[bold]Total[/bold]",
        str(summary["processed"]),
        str(summary["created"]),
        str(summary["updated"]),
        str(summary["failed"]),
        str(summary["unresolved"]),
    )
    console.print(table)

    errors = summary["errors"]
    if errors:
        console.print(f"\n[red]Errors ({len(errors)}):[/red]")
        for error in errors[:MAX_ERRORS_TO_DISPLAY]:
            console.print(f"  • {error}")
        if len(errors) > MAX_ERRORS_TO_DISPLAY:
            console.print(f"  ... and {len(errors) - MAX_ERRORS_TO_DISPLAY} more")


@app.command()
def cleanup(
    days: Annotated[
        int | None,
        typer.Option("--days", help="Delete unresolved reference records older than N days"),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to configuration file"),
    ] = None,
    log_level: Annotated[str, typer.Option("--log-level", "-l")] = "INFO",
    log_format: Annotated[str, typer.Option("--log-format", "-f")] = "json",
) -> None:
    """Delete stale records of drafts that are still waiting for references."""
    asyncio.run(_cleanup_main(days, config_file, log_level, log_format))


async def _cleanup_main(
    days: int | None, config_file: Path | None, log_level: str, log_format: str
) -> None:
    setup_logging(log_level, log_format)
    logger = structlog.get_logger(__name__)

    try:
        config = _load_config(config_file)
        async with PlatformClient(config.target, config.sync) as client:
            orchestrator = CatalogSyncOrchestrator(config, client)
            results = await orchestrator.cleanup_unresolved(days)
    except Exception as e:
        console.print(f"[red]Cleanup failed: {e}[/red]")
        logger.error("Cleanup failed", error=str(e), exc_info=True)
        sys.exit(1)

    table = Table(title="Unresolved Reference Cleanup")
    table.add_column("Resource", style="cyan")
    table.add_column("Deleted", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    for name, counts in results.items():
        table.add_row(name, str(counts["deleted"]), str(counts["failed"]))
    console.print(table)

    if any(counts["failed"] for counts in results.values()):
        sys.exit(1)


@app.command()
def validate_config(
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to configuration file"),
    ] = None,
) -> None:
    """Validate the configuration and test connectivity to the target project."""
    asyncio.run(_validate_config_main(config_file))


async def _validate_config_main(config_file: Path | None) -> None:
    setup_logging("INFO", "text")

    try:
        config = _load_config(config_file)
        console.print("[green]✓[/green] Configuration loaded successfully")

        async with PlatformClient(config.target, config.sync) as client:
            health = await client.health_check()
            console.print(
                f"[green]✓[/green] Connected to project {health['project_key']}"
            )
    except Exception as e:
        console.print(f"[red]✗[/red] Configuration validation failed: {e}")
        sys.exit(1)

    console.print("\n[green]Configuration is valid![/green]")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
