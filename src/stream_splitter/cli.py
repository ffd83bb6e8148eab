"""CLI for the stream splitter."""

import json
from pathlib import Path
from typing import Optional

import structlog
import typer

from stream_splitter.config import get_settings
from stream_splitter.errors import ConfigError, SplitterError
from stream_splitter.fixtures import SIZES, write_roster
from stream_splitter.logging import configure_logging
from stream_splitter.splitter import StreamSplitter
from stream_splitter.storage import get_storage
from stream_splitter.validation import validate_split

app = typer.Typer(
    name="stream-splitter",
    help="Split a delimited file into per-group outputs",
    no_args_is_help=True,
)

logger = structlog.get_logger()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, help="DEBUG, INFO, WARNING or ERROR"),
    log_format: Optional[str] = typer.Option(None, help="json or console"),
):
    """Configure logging before any command runs."""
    try:
        configure_logging(level=log_level, format=log_format, force=True)
    except ConfigError as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(1)


@app.command("split")
def split(
    source: str = typer.Argument(..., help="Source object path in storage"),
    prefix: Optional[str] = typer.Option(None, help="Output prefix (default: settings.dest_prefix)"),
    partition: Optional[str] = typer.Option(None, help="Partition key template, e.g. '{Semester}'"),
    group: Optional[str] = typer.Option(None, help="Group key template"),
):
    """Split SOURCE into group files, replacing stale partitions."""
    overrides = {
        "dest_prefix": prefix,
        "partition_template": partition,
        "group_template": group,
    }
    try:
        settings = get_settings().model_copy(
            update={k: v for k, v in overrides.items() if v is not None}
        )
        result = StreamSplitter.from_settings(settings).process(source)
    except SplitterError as e:
        typer.echo(f"Split failed: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(json.dumps(result.to_dict(), indent=2))


@app.command("validate")
def validate(
    source: str = typer.Argument(..., help="Source object path in storage"),
    prefix: Optional[str] = typer.Option(None, help="Output prefix (default: settings.dest_prefix)"),
):
    """Check that outputs under PREFIX hold every SOURCE row exactly once."""
    settings = get_settings()
    report = validate_split(
        get_storage(),
        source,
        prefix if prefix is not None else settings.dest_prefix,
        delimiter=settings.delimiter,
        encoding=settings.encoding,
    )
    typer.echo(json.dumps(report.to_dict(), indent=2))
    if not report.ok:
        raise typer.Exit(1)


@app.command("fixture")
def fixture(
    size: str = typer.Argument("small", help=f"One of: {', '.join(SIZES)}"),
    output: Optional[Path] = typer.Option(None, help="File to write (default: fixtures/master-data-SIZE.csv)"),
    seed: Optional[int] = typer.Option(None, help="Random seed for reproducible data"),
):
    """Generate a fake roster CSV."""
    if size not in SIZES:
        typer.echo(f"Unknown size: {size}")
        raise typer.Exit(1)

    path = write_roster(output or Path("fixtures") / f"master-data-{size}.csv", size=size, seed=seed)
    typer.echo(f"Wrote {path}")


if __name__ == "__main__":
    app()
