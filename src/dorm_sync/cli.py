"""
Command-line interface for the dormitory dataset sync tool.
"""

from pathlib import Path
from typing import Optional
import logging
import sys

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .config import SyncConfig, generate_default_config, load_config
from .matching.engine import ReconciliationEngine, normalize_dataset
from .models.operations import OpKind
from .models.run_log import SyncResult
from .reports.excel_generator import ExcelReportGenerator
from .store import open_store
from .utils.exceptions import (
    BatchCommitFailed,
    ConfigurationError,
    FatalInputError,
    StoreError,
    SyncError,
)
from .utils.logging_config import level_from_name, setup_logging

console = Console()

EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


@click.group()
@click.version_option(version=__version__)
def main():
    """Dormitory spreadsheet to document store sync tool."""
    pass


@main.command()
@click.argument("collection")
@click.option(
    "-f",
    "--file",
    "input_file",
    type=click.Path(exists=True, path_type=Path),
    help="Dataset file (defaults to input.default_file from the config)",
)
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option("-r", "--report", type=click.Path(path_type=Path), help="Write an Excel run report")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--dry-run", is_flag=True, help="Plan every operation but write nothing")
def reconcile(
    collection: str,
    input_file: Optional[Path],
    config: Optional[Path],
    report: Optional[Path],
    verbose: bool,
    dry_run: bool,
):
    """
    Reconcile a store collection with the authoritative dataset.

    COLLECTION: Configured collection name, e.g. employees or invoices
    """
    sync_config = _load_config_or_exit(config)
    _setup_logging(sync_config, verbose)

    result: Optional[SyncResult] = None
    exit_code = 0
    store = None
    try:
        # The dataset is read and checked before the store is opened
        normalized = normalize_dataset(sync_config, collection, input_file)
        store = open_store(sync_config.store)
        engine = ReconciliationEngine(sync_config, store)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            label = "Planning sync (dry run)..." if dry_run else "Syncing..."
            task = progress.add_task(f"{label} {collection}", total=None)
            try:
                result = engine.reconcile(
                    collection, input_file, dry_run=dry_run, normalized=normalized
                )
            finally:
                progress.update(task, completed=True)

    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(EXIT_CONFIG_ERROR)
    except BatchCommitFailed as e:
        console.print(f"[red]{e}[/red]")
        result = e.result
        exit_code = EXIT_FAILURE
    except (FatalInputError, StoreError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(EXIT_FAILURE)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(EXIT_FAILURE)
    finally:
        if store is not None:
            store.close()

    if result is not None:
        _display_summary(result)
        if dry_run:
            console.print("\n[yellow]Dry run - no documents were written[/yellow]")
        if result.log_path:
            console.print(f"Run log: {result.log_path}")
        else:
            console.print("[yellow]Run log could not be written[/yellow]")
        if report is not None:
            report_path = ExcelReportGenerator().generate_report(result, report)
            console.print(f"\n[green]Report generated: {report_path}[/green]")

    if exit_code:
        sys.exit(exit_code)


@main.command()
@click.argument("collection")
@click.argument("input_file", type=click.Path(exists=True, path_type=Path))
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
def parse(collection: str, input_file: Path, config: Optional[Path]):
    """
    Normalize a dataset file and display the records it yields.

    COLLECTION: Configured collection name
    INPUT_FILE: Spreadsheet or CSV export
    """
    sync_config = _load_config_or_exit(config)
    try:
        spec = sync_config.collection(collection)
        normalized = normalize_dataset(sync_config, collection, input_file)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(EXIT_CONFIG_ERROR)
    except SyncError as e:
        console.print(f"[red]Error parsing file: {e}[/red]")
        sys.exit(EXIT_FAILURE)

    field_names = list(spec.fields)[:5]
    table = Table(title=f"{collection} records: {input_file.name}")
    table.add_column(spec.natural_key)
    for name in field_names:
        table.add_column(name)
    for ref in spec.references:
        table.add_column(ref.column)

    for record in normalized.records[:20]:  # Show first 20
        table.add_row(
            record.natural_key,
            *[_format_cell(record.fields.get(name)) for name in field_names],
            *[record.references.get(ref.id_field) or "-" for ref in spec.references],
        )

    console.print(table)

    if len(normalized.records) > 20:
        console.print(f"\n... and {len(normalized.records) - 20} more records")

    console.print(f"\nTotal records: {len(normalized.records)}")
    console.print(f"Blank rows skipped: {normalized.skipped_blank_rows}")

    if normalized.rejected:
        rejected_table = Table(title="Rejected Rows")
        rejected_table.add_column("Row", justify="right")
        rejected_table.add_column("Key")
        rejected_table.add_column("Reason")
        for rejected in normalized.rejected:
            rejected_table.add_row(
                str(rejected.row_number), rejected.natural_key or "-", rejected.reason
            )
        console.print(rejected_table)


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _load_config_or_exit(config: Optional[Path]) -> SyncConfig:
    try:
        return load_config(config)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(EXIT_CONFIG_ERROR)


def _setup_logging(sync_config: SyncConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else level_from_name(sync_config.logging.level)
    log_file = Path(sync_config.logging.file) if sync_config.logging.file else None
    setup_logging(level, log_file=log_file, log_format=sync_config.logging.format)


def _format_cell(value) -> str:
    if value is None:
        return "-"
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    if hasattr(value, "strftime"):
        return value.strftime("%Y-%m-%d")
    return str(value)


def _display_summary(result: SyncResult) -> None:
    """Display sync summary in console."""
    run_log = result.run_log

    table = Table(title=f"Sync Summary: {run_log.collection}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Status", run_log.status)
    table.add_row("Records", str(result.records_total))
    table.add_row("Created", str(result.count(OpKind.CREATE)))
    table.add_row("Updated", str(result.count(OpKind.UPDATE)))
    table.add_row("Deleted", str(result.count(OpKind.DELETE)))
    table.add_row("Rejected Rows", str(result.rejected_count))
    table.add_row("Unresolved References", str(result.unresolved_count))
    table.add_row("Records Skipped", str(result.skipped_record_count))
    table.add_row("Blank Rows", str(run_log.skipped_blank_rows))
    table.add_row("Batches", f"{run_log.batches_committed}/{run_log.batches_total}")
    table.add_row("Processing Time", f"{result.processing_time_seconds:.2f}s")

    console.print(table)

    if len(run_log.collections) > 1 or run_log.collection not in run_log.collections:
        per_collection = Table(title="Operations by Collection")
        per_collection.add_column("Collection", style="cyan")
        for header in ("Created", "Updated", "Dup. Deleted", "Orphans Deleted"):
            per_collection.add_column(header, justify="right")
        for name, counts in run_log.counts().items():
            per_collection.add_row(
                name,
                str(counts["created"]),
                str(counts["updated"]),
                str(counts["deletedDuplicate"]),
                str(counts["deletedOrphan"]),
            )
        console.print(per_collection)


if __name__ == "__main__":
    main()
