"""Typer command line for the transfer layer.

Commands::

    pkgtools-io pack DIRECTORY OUTPUT
    pkgtools-io download URL [--prefix PREFIX] [--list]
    pkgtools-io fetch HOSTNAME PATH [--port N] [--retries N] [--json]

Failures are reported on stderr and exit with status 1.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.markup import escape

from .errors import TransferIOError, UserConfigError
from .io.download import download_and_extract_file
from .io.pack import write_tgz
from .logging_config import LOGGER_NAME, setup_logging
from .network.fetcher import FetchOptions, Fetcher
from .settings import ArchiveSettings, TransferSettings, get_settings

__all__ = ["app", "main"]

console = Console()
err_console = Console(stderr=True, soft_wrap=True)
app = typer.Typer(help="PkgTools transfer I/O", no_args_is_help=True)


def _fail(exc: Exception) -> typer.Exit:
    err_console.print(f"[red]✗ Error:[/red] {escape(str(exc))}")
    return typer.Exit(code=1)


def _with_prefix(settings: TransferSettings, prefix: Optional[str]) -> TransferSettings:
    if prefix is None:
        return settings
    try:
        archive = ArchiveSettings.model_validate(
            {**settings.archive.model_dump(), "top_level_prefix": prefix}
        )
    except PydanticValidationError as exc:
        raise UserConfigError(f"Invalid --prefix {prefix!r}: {exc}") from exc
    return settings.model_copy(update={"archive": archive})


@app.callback()
def _configure(
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Log at DEBUG level"),
    log_dir: Optional[Path] = typer.Option(
        None, "--log-dir", help="Also write JSON logs to this directory"
    ),
) -> None:
    """Configure logging before any command runs."""
    try:
        config = get_settings().logging
    except UserConfigError as exc:
        raise _fail(exc)
    if verbose:
        config = config.model_copy(update={"level": "DEBUG"})
    setup_logging(config, log_dir=log_dir)


@app.command()
def pack(
    directory: Path = typer.Argument(..., help="Directory to archive"),
    output: Path = typer.Argument(..., help="Path of the .tgz file to write"),
) -> None:
    """Pack DIRECTORY into the gzip tarball OUTPUT."""
    try:
        asyncio.run(write_tgz(directory, output))
    except TransferIOError as exc:
        raise _fail(exc)
    console.print(f"[green]✓[/green] Packed {escape(str(directory))} -> {escape(str(output))}")


@app.command()
def download(
    url: str = typer.Argument(..., help="URL of a gzip tarball"),
    prefix: Optional[str] = typer.Option(
        None, "--prefix", help="Top-level directory every entry must carry (ends in '/')"
    ),
    list_files: bool = typer.Option(False, "--list", help="Print every extracted path"),
) -> None:
    """Download and extract URL in memory, then summarise its contents."""
    try:
        settings = _with_prefix(get_settings(), prefix)
        snapshot = asyncio.run(
            download_and_extract_file(url, logging.getLogger(LOGGER_NAME), settings=settings)
        )
    except TransferIOError as exc:
        raise _fail(exc)

    paths = [path for path, _ in snapshot.iter_files()]
    if list_files:
        for path in paths:
            typer.echo(path)
    console.print(f"[green]✓[/green] {len(paths)} files extracted from {escape(url)}")


@app.command()
def fetch(
    hostname: str = typer.Argument(..., help="Host to contact over HTTPS"),
    path: str = typer.Argument(..., help="Request path"),
    port: Optional[int] = typer.Option(None, "--port", help="Port override"),
    retries: Optional[int] = typer.Option(
        None, "--retries", help="Total attempts for transient failures"
    ),
    as_json: bool = typer.Option(False, "--json", help="Parse and pretty-print the body"),
) -> None:
    """Fetch HOSTNAME/PATH and print the response body."""
    options = FetchOptions(hostname=hostname, port=port, path=path, retries=retries)

    async def _run() -> str:
        async with Fetcher() as fetcher:
            if as_json:
                return json.dumps(await fetcher.fetch_json(options), indent=4, ensure_ascii=False)
            return await fetcher.fetch(options)

    try:
        body = asyncio.run(_run())
    except TransferIOError as exc:
        raise _fail(exc)
    typer.echo(body)


def main() -> None:
    """Invoke the Typer application."""

    app()


if __name__ == "__main__":  # pragma: no cover - manual CLI invocation helper
    main()
