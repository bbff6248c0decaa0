"""CLI for the ``cashflow_import`` package.

A Typer application exposing the ingestion pipeline. Environment overrides
(``CASHFLOW_IMPORT_*``) are loaded from a local ``.env`` using
``python-dotenv`` before any command runs. Business logic lives in
``cashflow_import.processor`` and related modules; handlers here only parse
options, print summaries and map failures to a non-zero exit status.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from typer.models import OptionInfo

from .comma_config import recommended_comma_config
from .datasets import calculate_dataset_statistics
from .files import FileReaderConfig, read_csv_file
from .logging_setup import configure_logging
from .models import BatchConfig, ColumnMapping
from .parsers import create_automatic_column_mapping, split_lines
from .parsers.headers import header_tokens
from .processor import CSVProcessor, ProcessingResult, ProcessorConfig
from .publish import JsonLinesSink, publish_dataset

# ---- Small module-level helpers used by CLI commands -------------------------


def _load_mapping(raw: str) -> ColumnMapping:
    """Parse ``--mapping`` given either as inline JSON or as a path to a JSON file."""

    candidate = Path(raw)
    text = candidate.read_text(encoding="utf-8") if candidate.is_file() else raw
    return ColumnMapping.model_validate_json(text)


def _read_text(csv_path: Path) -> str:
    result = read_csv_file(csv_path, FileReaderConfig.permissive())
    if not result.success or result.content is None:
        for err in result.errors:
            print(f"Error: {err}", file=sys.stderr)
        raise typer.Exit(1)
    return result.content


def _print_summary(result: ProcessingResult) -> None:
    stats = result.statistics
    print(
        f"files={stats.total_files} ok={stats.successful_files} failed={stats.failed_files} "
        f"rows={stats.valid_rows}/{stats.total_rows} movements={stats.total_movements} "
        f"time_ms={stats.processing_time_ms:.1f}"
    )
    if result.dataset is not None:
        ds = result.dataset
        print(
            f"dataset={ds.dataset_name} currency={ds.currency} type={ds.dataset_type} "
            f"period={ds.period_start or '-'}..{ds.period_end or '-'}"
        )
    for w in result.warnings:
        print(f"Warning: {w}", file=sys.stderr)
    for e in result.errors:
        print(f"Error: {e}", file=sys.stderr)


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import financial movements from CSV exports into normalized datasets. "
        "Loads CASHFLOW_IMPORT_* overrides from a local .env before running."
    ),
)

# Module-level option object to satisfy ruff B008 (no calls in parameter
# defaults).
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,
    "--csv-path",
    help="Path to a CSV export",
    dir_okay=False,
    file_okay=True,
    exists=False,  # missing files are reported by the reader
)


@app.command("import")
def import_cmd(
    csv_paths: Annotated[list[Path], CSV_PATH_OPTION],
    *,
    mapping: str | None = typer.Option(
        None, help="Column mapping as JSON (inline or a path to a .json file)."
    ),
    dataset_name: str | None = typer.Option(None, help="Dataset name (defaults to the file name)."),
    imported_by: str | None = typer.Option(None, help="Identifier of the importing user."),
    dataset_type: str = typer.Option("cashflow", help="Dataset type tag."),
    out: Path | None = typer.Option(
        None, help="Write the dataset as JSON lines into this directory.", file_okay=False
    ),
    batch_size: int | None = typer.Option(
        None, min=1, help="Movements per batch when writing (default: sized to the dataset)."
    ),
    delay: float = typer.Option(0.0, min=0.0, help="Seconds to wait between batches."),
    max_retries: int = typer.Option(0, min=0, help="Retries per failed batch."),
    permissive: bool = typer.Option(
        False, help="Accept up to 10 files of up to 50MB, .csv or .txt, without pre-validation."
    ),
) -> None:
    """Parse one or more CSV files into a single dataset."""

    try:
        column_mapping = _load_mapping(mapping) if mapping else None
        config = ProcessorConfig(
            column_mapping=column_mapping,
            use_mapping=column_mapping is not None,
            dataset_name=dataset_name,
            imported_by=imported_by,
            dataset_type=dataset_type,
            reader_config=(
                FileReaderConfig.permissive()
                if permissive
                else FileReaderConfig(max_files=len(csv_paths) or 1)
            ),
        )
    except (ValidationError, OSError) as e:
        print(f"Error: invalid options: {e}", file=sys.stderr)
        raise typer.Exit(1) from e

    result = asyncio.run(CSVProcessor(config).process_files(csv_paths))
    _print_summary(result)
    if result.dataset is None:
        raise typer.Exit(1)

    if out is not None:
        batch_config = BatchConfig(
            batch_size=batch_size or max(1, len(result.dataset.movements)),
            delay_between_batches=delay,
            max_retries=max_retries,
        )
        sink = JsonLinesSink(out)
        try:
            published = asyncio.run(publish_dataset(result.dataset, sink, batch_config))
        except OSError as e:
            print(f"Error: could not write dataset: {e}", file=sys.stderr)
            raise typer.Exit(1) from e
        b = published.batches
        print(
            f"written={sink.path_for(published.dataset_id)} batches={b.successful_batches}/{b.total_batches} "
            f"movements={b.processed_movements}"
        )
        for e in b.errors:
            print(f"Error: {e}", file=sys.stderr)
        if not published.success:
            raise typer.Exit(1)

    if not result.success:
        raise typer.Exit(1)


@app.command("suggest-mapping")
def suggest_mapping_cmd(csv_path: Annotated[Path, CSV_PATH_OPTION]) -> None:
    """Print a column mapping guessed from the header row."""

    lines = split_lines(_read_text(csv_path))
    if not lines:
        print("Error: the file has no lines", file=sys.stderr)
        raise typer.Exit(1)
    suggested = create_automatic_column_mapping(header_tokens(lines[0]))
    print(suggested.model_dump_json(exclude_none=True, indent=2))
    missing = suggested.required_fields_missing()
    if missing:
        print(f"Warning: unmapped required fields: {', '.join(missing)}", file=sys.stderr)


@app.command("comma-config")
def comma_config_cmd(csv_path: Annotated[Path, CSV_PATH_OPTION]) -> None:
    """Print the recommended embedded-comma configuration for a file."""

    rec = recommended_comma_config(csv_path.name, _read_text(csv_path))
    print(f"preset={rec.preset}")
    print(f"description={rec.description}")
    for column, max_commas in sorted(rec.config.items()):
        print(f"column {column}: max_commas={max_commas}")


@app.command("stats")
def stats_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    *,
    mapping: str | None = typer.Option(None, help="Column mapping as JSON (inline or a path)."),
) -> None:
    """Print totals per direction for the dataset built from a file."""

    try:
        column_mapping = _load_mapping(mapping) if mapping else None
    except (ValidationError, OSError) as e:
        print(f"Error: invalid mapping: {e}", file=sys.stderr)
        raise typer.Exit(1) from e
    config = ProcessorConfig(
        column_mapping=column_mapping,
        use_mapping=column_mapping is not None,
        reader_config=FileReaderConfig.permissive(),
    )
    result = asyncio.run(CSVProcessor(config).process_files([csv_path]))
    if result.dataset is None:
        _print_summary(result)
        raise typer.Exit(1)

    s = calculate_dataset_statistics(result.dataset)
    print(f"movements\t{s.total_movements}")
    print(f"total\t{s.total_amount}")
    print(f"average\t{s.average_amount:.2f}")
    print(f"ingresos\t{s.ingresos_count}\t{s.total_ingresos}")
    print(f"egresos\t{s.egresos_count}\t{s.total_egresos}")
    print(f"balance\t{s.balance}")


@app.callback(invoke_without_command=True)
def _root(ctx: typer.Context) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()

    if ctx.invoked_subcommand is None:
        print("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover
    app()
