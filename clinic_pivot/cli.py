"""Command Line Interface for Clinic-Pivot.

This module provides a CLI using Typer for pivoting clinic fact records into
one row per patient, with Rich tables for terminal output.
"""

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from clinic_pivot import __version__
from clinic_pivot.adapters.export import export_rows, table_columns
from clinic_pivot.domain.facts import FactFilter, PivotReport, Row
from clinic_pivot.domain.ports import PivotError
from clinic_pivot.domain.services import coerce_facts_safely
from clinic_pivot.infrastructure.config_manager import ConfigManager, PivotConfig
from clinic_pivot.infrastructure.logging_config import setup_logging
from clinic_pivot.infrastructure.settings import settings
from clinic_pivot.main import create_fact_source, run_stream, run_table

# Initialize Typer app and Rich console
app = typer.Typer(
    name="clinic-pivot",
    help="Clinic-Pivot: reshape clinic fact records into one row per patient",
    add_completion=False
)
console = Console()


def load_config(config_file: Optional[Path]) -> PivotConfig:
    """Load the pivot configuration from a file or the environment."""
    try:
        if config_file is not None:
            return ConfigManager.from_file(str(config_file)).get_pivot_config()
        return settings.pivot_config
    except (FileNotFoundError, ValueError, PivotError) as e:
        console.print(f"[red]✗[/red] Failed to load configuration: {escape(str(e))}")
        raise typer.Exit(code=1)


def render_rows(rows: List[Row], title: str, columns: Optional[List[str]] = None) -> None:
    """Print rows as a Rich table; None renders as a dim 'null'."""
    rich_table = Table(title=title, show_header=True, header_style="bold")
    columns = columns or table_columns(rows)
    for column in columns:
        rich_table.add_column(escape(column), style="cyan" if column == "patient_id" else None)

    for row in rows:
        rich_table.add_row(*[
            "[dim]null[/dim]" if row.get(column) is None else escape(str(row.get(column)))
            for column in columns
        ])

    console.print(rich_table)


def print_report(report: PivotReport) -> None:
    summary_table = Table(show_header=False, box=None, padding=(0, 2))
    summary_table.add_row("Facts read:", f"{report.fact_count:,}")
    summary_table.add_row("Rows:", f"{report.row_count:,}")
    summary_table.add_row("Fields:", f"{report.field_count:,}")
    summary_table.add_row("Patients with facts:", f"{report.observed_patients:,}")
    summary_table.add_row("Default-filled cells:", f"{report.default_filled:,}")
    summary_table.add_row("Overwritten values:", f"{report.overwritten_values:,}")
    if report.dropped_facts:
        summary_table.add_row(
            "Dropped (outside layout):",
            f"[yellow]{report.dropped_facts:,}[/yellow] "
            f"({report.dropped_unknown_patient} patient, {report.dropped_unknown_field} field)"
        )
    console.print(summary_table)


@app.command()
def table(
    source: Optional[str] = typer.Argument(None, help="Fact source (CSV, TSV, JSON, DuckDB file or :memory:)"),
    clinic_id: Optional[str] = typer.Option(None, "--clinic-id", help="Only facts from this clinic"),
    patient_id: Optional[str] = typer.Option(None, "--patient-id", help="Only facts for this patient"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON configuration file"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the table to .csv or .json"),
    report: bool = typer.Option(False, "--report", "-r", help="Print a pivot summary"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Build the dense table: one row per configured patient, one column per configured field.

    Examples:
        clinic-pivot table results.csv --clinic-id 1
        clinic-pivot table results.duckdb --config pivot.json --output table.csv
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = load_config(config_file)
    filters = FactFilter(clinic_id=clinic_id, patient_id=patient_id)

    fact_source = _open_source(config, source)
    try:
        rows, pivot_report = run_table(filters, config=config, source=fact_source)
    except PivotError as e:
        console.print(f"[red]✗[/red] Failed to build table: {escape(str(e))}")
        raise typer.Exit(code=1)
    finally:
        fact_source.close()

    columns = ["patient_id", *config.to_layout().field_names]
    if output is not None:
        _export(rows, output, columns)
    else:
        render_rows(rows, title="Patient table", columns=columns)

    if report:
        print_report(pivot_report)


@app.command()
def stream(
    source: Optional[str] = typer.Argument(None, help="Fact source (CSV, TSV, JSON, DuckDB file or :memory:)"),
    clinic_id: Optional[str] = typer.Option(None, "--clinic-id", help="Only facts from this clinic"),
    patient_id: Optional[str] = typer.Option(None, "--patient-id", help="Only facts for this patient"),
    strict: bool = typer.Option(False, "--strict", help="Fail if a patient's facts are not contiguous"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the rows to .csv or .json"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Pivot facts in source order: a new row starts whenever the patient changes.

    Examples:
        clinic-pivot stream results.csv
        clinic-pivot stream results.csv --strict
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = settings.pivot_config
    filters = FactFilter(clinic_id=clinic_id, patient_id=patient_id)

    fact_source = _open_source(config, source)
    try:
        rows = run_stream(filters, config=config, source=fact_source, require_contiguous=strict)
    except PivotError as e:
        console.print(f"[red]✗[/red] Failed to pivot facts: {escape(str(e))}")
        raise typer.Exit(code=1)
    finally:
        fact_source.close()

    if output is not None:
        _export(rows, output)
    else:
        render_rows(rows, title="Patient rows")


@app.command()
def validate(
    source: str = typer.Argument(..., help="Fact source (CSV, TSV, JSON or DuckDB file)"),
) -> None:
    """Check every record of a source and list the malformed ones."""
    config = settings.pivot_config
    fact_source = _open_source(config, source)

    try:
        results = list(coerce_facts_safely(fact_source.read_records()))
    except PivotError as e:
        console.print(f"[red]✗[/red] Failed to read source: {escape(str(e))}")
        raise typer.Exit(code=1)
    finally:
        fact_source.close()

    failures = [result for result in results if result.is_failure()]
    console.print(f"Records checked: [bold]{len(results):,}[/bold]")

    if not failures:
        console.print("[green]✓[/green] All records are valid facts")
        return

    failure_table = Table(show_header=True, header_style="bold")
    failure_table.add_column("Record", justify="right")
    failure_table.add_column("Error")
    for result in failures:
        failure_table.add_row(str(result.error_details.get("record_index")), escape(result.error))
    console.print(failure_table)
    console.print(f"[red]✗[/red] {len(failures):,} invalid records")
    raise typer.Exit(code=1)


@app.command()
def info(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON configuration file"),
) -> None:
    """Display the effective configuration."""
    config = load_config(config_file)
    console.print("[bold blue]Clinic-Pivot Configuration[/bold blue]\n")

    info_table = Table(show_header=False, box=None, padding=(0, 2))
    info_table.add_row("Application:", settings.app_name)
    info_table.add_row("Source:", config.source)
    info_table.add_row("Source table:", config.source_table)
    info_table.add_row("Fields:", ", ".join(config.field_names) or "[dim]none[/dim]")
    info_table.add_row("Patients:", ", ".join(str(p) for p in config.patient_ids) or "[dim]none[/dim]")
    info_table.add_row("Default value:", "null" if config.default_value is None else repr(config.default_value))
    info_table.add_row("Log level:", settings.log_level)

    console.print(info_table)


def _open_source(config: PivotConfig, source: Optional[str]):
    try:
        return create_fact_source(config, source=source)
    except PivotError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(code=1)


def _export(rows: List[Row], output: Path, columns: Optional[List[str]] = None) -> None:
    try:
        written = export_rows(rows, str(output), columns=columns)
    except (ValueError, OSError) as e:
        console.print(f"[red]✗[/red] Failed to export: {escape(str(e))}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Wrote {len(rows):,} rows to {written}")


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version information"),
) -> None:
    """Clinic-Pivot: reshape clinic fact records into one row per patient."""
    if version:
        console.print(f"Clinic-Pivot v{__version__}")
        raise typer.Exit()
    setup_logging(use_json=settings.log_json, log_level=settings.log_level)
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


if __name__ == "__main__":
    app()
