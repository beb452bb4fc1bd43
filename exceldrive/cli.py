"""Typer based command line entry points for exceldrive."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from exceldrive.core.errors import ConfigError, ExcelDriveError
from exceldrive.core.logger import get_logger, set_level
from exceldrive.core.pipeline import ExportPipeline
from exceldrive.services.graph.client import GraphDriveClient
from exceldrive.services.graph.config import DEFAULT_SHEET_NAME, resolve_config
from exceldrive.services.graph.uploader import UploadProgress
from exceldrive.services.records.source import RecordSource, StaticRecordSource, TableFileRecordSource
from exceldrive.services.tabular.encoder import encode_records

LOGGER = get_logger()

EXIT_FAILURE = 1
EXIT_CONFIG = 2

app = typer.Typer(name="exceldrive", help="Export records to an Excel workbook on OneDrive.")


def _build_source(records: Optional[Path]) -> RecordSource:
    if records is None:
        return StaticRecordSource()
    return TableFileRecordSource(records)


def _handle_error(exc: Exception) -> None:
    LOGGER.error("exceldrive operation failed: %s", exc, exc_info=True)
    typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
    code = EXIT_CONFIG if isinstance(exc, ConfigError) else EXIT_FAILURE
    raise typer.Exit(code=code)


def _print_progress(progress: UploadProgress) -> None:
    typer.echo(f"Uploading chunk {progress.index} out of {progress.total}")


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        help="Set global logging level (e.g. DEBUG/INFO/WARNING).",
    ),
) -> None:
    """Configure global CLI behaviour before executing commands."""

    try:
        set_level(log_level)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--log-level") from exc


@app.command("run")
def cmd_run(
    env: Optional[str] = typer.Option(None, "--env", help="Settings overlay name (settings.<env>.yaml)"),
    path: Optional[str] = typer.Option(None, "--path", help="Destination path in the user's drive"),
    sheet: Optional[str] = typer.Option(None, "--sheet", help="Worksheet name"),
    upn: Optional[str] = typer.Option(None, "--upn", help="User principal name owning the drive"),
    chunk_size: Optional[int] = typer.Option(None, "--chunk-size", help="Upload chunk size in bytes"),
    records: Optional[Path] = typer.Option(
        None, "--records", exists=True, dir_okay=False, help="CSV/XLSX file with Id, Name, City, Country"
    ),
) -> None:
    """Build the workbook and upload it to OneDrive."""

    client: GraphDriveClient | None = None
    try:
        config = resolve_config(
            env,
            overrides={"upload_path": path, "sheet_name": sheet, "upn": upn, "chunk_size": chunk_size},
        )
        client = GraphDriveClient(config)
        pipeline = ExportPipeline(client)
        result = pipeline.run(_build_source(records), progress_cb=_print_progress)
    except (ExcelDriveError, ValueError, OSError) as exc:
        _handle_error(exc)
    else:
        typer.echo("Upload is complete")
        typer.echo(f"{result.item.id} {result.item.name or result.upload_path}")
    finally:
        if client is not None:
            client.close()


@app.command("encode")
def cmd_encode(
    out: Path = typer.Option(..., "--out", dir_okay=False, help="Where to write the workbook"),
    sheet: str = typer.Option(DEFAULT_SHEET_NAME, "--sheet", help="Worksheet name"),
    records: Optional[Path] = typer.Option(
        None, "--records", exists=True, dir_okay=False, help="CSV/XLSX file with Id, Name, City, Country"
    ),
) -> None:
    """Write the workbook locally without uploading it."""

    try:
        document = encode_records(_build_source(records).load(), sheet_name=sheet)
        written = document.save(out)
    except (ExcelDriveError, ValueError, OSError) as exc:
        _handle_error(exc)
    else:
        typer.echo(f"{written} rows={document.rows} bytes={document.size}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
