"""CLI for blob-propagator."""

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .errors import ConfigError, PropagatorError
from .hashing import decode_blob_data
from .service import PropagatorService
from .service_types import JobState
from .storage_models import BlobStorage
from .utils import humanize_size

app = typer.Typer(help="""\
Propagate staged blobs to durable storage backends and record where each
copy lives. Stage blob data, propagate it, read it back.""")

console = Console()

ConfigOption = typer.Option(
    None, "--config", "-c", help="Config file (default: $BLOB_PROPAGATOR_CONFIG or ./blob-propagator.yaml)"
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _open_service(config: Optional[Path]) -> PropagatorService:
    """Build the service or exit with a readable configuration error."""
    try:
        return PropagatorService.from_config_file(config)
    except ConfigError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(1)


def _parse_backends(names: Optional[List[str]]) -> Optional[List[BlobStorage]]:
    if not names:
        return None
    try:
        return [BlobStorage.parse(n) for n in names]
    except ValueError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(2)


@app.command()
def stage(
    versioned_hash: str = typer.Argument(..., help="Blob versioned hash"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Read blob bytes from file"),
    hex_data: Optional[str] = typer.Option(None, "--hex", help="Blob data as 0x-prefixed hex"),
    config: Optional[Path] = ConfigOption,
):
    """Stage blob data for propagation.

    Examples:
        blob-propagator stage 0x01ab... --file blob.bin
        blob-propagator stage 0x01ab... --hex 0x68656c6c6f
    """
    if (file is None) == (hex_data is None):
        console.print("[red]✗[/red] Pass exactly one of --file or --hex")
        raise typer.Exit(2)

    try:
        data = file.read_bytes() if file is not None else decode_blob_data(hex_data)
    except (OSError, ValueError) as e:
        console.print(f"[red]✗[/red] Could not read blob data: {escape(str(e))}")
        raise typer.Exit(1)

    with _open_service(config) as service:
        try:
            path = service.stage(versioned_hash, data)
        except PropagatorError as e:
            console.print(f"[red]✗[/red] {escape(str(e))}")
            raise typer.Exit(1)
    console.print(f"[green]✓[/green] Staged {versioned_hash} ({humanize_size(len(data))})")
    console.print(f"[dim]{path}[/dim]")


@app.command()
def propagate(
    versioned_hash: str = typer.Argument(..., help="Blob versioned hash"),
    backend: Optional[List[str]] = typer.Option(
        None, "--backend", "-b", help="Target backend (repeatable; default: all configured)"
    ),
    config: Optional[Path] = ConfigOption,
):
    """Propagate a staged blob to its target backends."""
    storages = _parse_backends(backend)

    with _open_service(config) as service:
        outcomes = service.propagate(versioned_hash, storages)

    table = Table(title=f"Propagation of {versioned_hash}")
    table.add_column("Backend")
    table.add_column("State")
    table.add_column("Attempts", justify="right")
    table.add_column("Reference / Error")
    for outcome in outcomes:
        if outcome.succeeded:
            state = "[green]succeeded[/green]"
            detail = outcome.reference.reference
        else:
            state = f"[red]{outcome.state.value}[/red]"
            detail = escape(f"[{outcome.error_kind.value}] {outcome.error}")
        table.add_row(outcome.storage.value, state, str(outcome.attempts), detail)
    console.print(table)

    if any(o.state == JobState.DEAD for o in outcomes):
        raise typer.Exit(1)


@app.command()
def store(
    versioned_hash: str = typer.Argument(..., help="Blob versioned hash"),
    file: Path = typer.Option(..., "--file", "-f", help="Read blob bytes from file"),
    config: Optional[Path] = ConfigOption,
):
    """Store a blob in every backend synchronously, bypassing the dispatcher."""
    try:
        data = file.read_bytes()
    except OSError as e:
        console.print(f"[red]✗[/red] Could not read blob data: {escape(str(e))}")
        raise typer.Exit(1)

    with _open_service(config) as service:
        result = service.store_now(versioned_hash, data)

    for ref in result.references:
        console.print(f"  [green]✓[/green] {ref.storage.value}: {ref.reference}")
    for storage, error in result.failures.items():
        console.print(f"  [red]✗[/red] {storage.value}: {escape(error)}")

    if not result.references:
        raise typer.Exit(1)
    if result.partial:
        console.print("[yellow]Stored partially; failed backends can be propagated later[/yellow]")


@app.command()
def get(
    versioned_hash: str = typer.Argument(..., help="Blob versioned hash"),
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="Backend to read from"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write bytes to file"),
    config: Optional[Path] = ConfigOption,
):
    """Read a blob back from durable storage."""
    storages = _parse_backends([backend] if backend else None)
    storage = storages[0] if storages else None

    with _open_service(config) as service:
        try:
            data = service.read(versioned_hash, storage)
        except PropagatorError as e:
            console.print(f"[red]✗[/red] {escape(str(e))}")
            raise typer.Exit(1)

    if out is not None:
        out.write_bytes(data)
        console.print(f"[green]✓[/green] Wrote {humanize_size(len(data))} to {out}")
    else:
        console.print(f"0x{data.hex()}", soft_wrap=True)


@app.command()
def references(
    versioned_hash: str = typer.Argument(..., help="Blob versioned hash"),
    config: Optional[Path] = ConfigOption,
):
    """List where a blob has been stored."""
    with _open_service(config) as service:
        rows = service.references(versioned_hash)

    if not rows:
        console.print(f"[yellow]No storage references for {versioned_hash}[/yellow]")
        return

    table = Table(title=f"Storage references for {versioned_hash}")
    table.add_column("Backend")
    table.add_column("Reference")
    for row in rows:
        table.add_row(row.blob_storage.value, row.data_reference)
    console.print(table)


@app.command()
def sweep(
    grace: Optional[float] = typer.Option(
        None, "--grace", help="Seconds before a partially propagated staged file is removed"
    ),
    config: Optional[Path] = ConfigOption,
):
    """Remove staged files that are no longer needed."""
    with _open_service(config) as service:
        report = service.sweep(grace)

    console.print(f"Examined {report.examined} staged blob(s)")
    console.print(f"  [green]removed[/green]: {len(report.removed)}")
    console.print(f"  [yellow]within grace period[/yellow]: {len(report.retained_recent)}")
    console.print(f"  [red]not stored anywhere yet[/red]: {len(report.retained_unstored)}")
    for versioned_hash in report.retained_unstored:
        console.print(f"    [red]![/red] {versioned_hash}")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
