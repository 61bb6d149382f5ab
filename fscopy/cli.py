"""Command-line interface for fscopy.

Exposes ``cp`` (copy one file between any two locators), ``stat`` and a
``config`` group for settings and stored access tokens.
"""

from __future__ import annotations

import json
import logging
import signal
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import click
import httpx
from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from fscopy.config import ConfigManager, delete_access_token, store_access_token
from fscopy.context import Context
from fscopy.copier import Copier
from fscopy.errors import ContextCanceled, FsError
from fscopy.locator import Locator
from fscopy.registry import default_registry
from fscopy.utils.path_helpers import human_readable_size

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s - %(message)s"
_DATE_FORMAT = "%H:%M:%S"

EXIT_INTERRUPTED = 130

console = Console()
err_console = Console(stderr=True)


def _configure_logging(verbose: bool) -> None:
    """Set up root logging to stderr."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format=_LOG_FORMAT,
        datefmt=_DATE_FORMAT,
        stream=sys.stderr,
    )
    # Quieten noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _parse_locator(raw: str) -> Locator:
    try:
        return Locator.parse(raw, default_scheme="file")
    except FsError as exc:
        raise click.BadParameter(str(exc)) from exc


@contextmanager
def _cancel_on_interrupt(ctx: Context) -> Iterator[None]:
    """Turn Ctrl-C into a cancellation of *ctx* while the block runs."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum, frame) -> None:
        logger.info("Interrupted, cancelling transfer")
        ctx.cancel()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _fail(exc: FsError) -> None:
    err_console.print(f"[red]Error:[/red] {escape(str(exc))}")
    code = EXIT_INTERRUPTED if isinstance(exc, ContextCanceled) else 1
    sys.exit(code)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="FSCOPY_CONFIG_DIR",
    default=None,
    help="Settings directory (default ~/.fscopy).",
)
@click.pass_context
def cli(click_ctx: click.Context, verbose: bool, config_dir: Optional[Path]) -> None:
    """fscopy: copy files between local disk and remote storage."""
    _configure_logging(verbose)
    click_ctx.obj = ConfigManager(base_dir=config_dir)


@cli.command()
@click.argument("dst")
@click.argument("src")
@click.option("--no-progress", is_flag=True, help="Do not show a progress bar.")
@click.option("--timeout", type=float, default=None, help="Abort after this many seconds.")
@click.pass_obj
def cp(config: ConfigManager, dst: str, src: str, no_progress: bool, timeout: Optional[float]) -> None:
    """Copy SRC to DST.  Plain paths are treated as file:// locators."""
    dst_locator = _parse_locator(dst)
    src_locator = _parse_locator(src)
    show_progress = bool(config.get("show_progress")) and not no_progress and console.is_terminal

    root = Context.background()
    ctx = root.with_timeout(timeout) if timeout is not None else root.with_cancel()
    with httpx.Client(timeout=float(config.get("http_timeout")), follow_redirects=True) as client:
        copier = Copier(default_registry(config, client), chunk_size=int(config.get("chunk_size")))
        with ctx, _cancel_on_interrupt(ctx):
            try:
                if show_progress:
                    copied = _copy_with_progress(ctx, copier, dst_locator, src_locator)
                else:
                    copied = copier.copy(ctx, dst_locator, src_locator)
            except FsError as exc:
                _fail(exc)
                return

    logger.info("Copy complete (%s)", human_readable_size(copied))


def _copy_with_progress(ctx: Context, copier: Copier, dst: Locator, src: Locator) -> int:
    total: Optional[int] = None
    try:
        total = copier.stat(ctx, src).size
    except FsError as exc:
        logger.warning("Could not stat source, progress total unknown: %s", exc)

    columns = (
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        TimeRemainingColumn(),
    )
    with Progress(*columns, console=console, transient=False) as progress:
        task = progress.add_task(Path(src.path).name or src.redacted(), total=total)
        return copier.copy(ctx, dst, src, progress=lambda n: progress.advance(task, n))


@cli.command()
@click.argument("locator")
@click.pass_obj
def stat(config: ConfigManager, locator: str) -> None:
    """Show size and modification time of LOCATOR."""
    parsed = _parse_locator(locator)
    with httpx.Client(timeout=float(config.get("http_timeout")), follow_redirects=True) as client:
        copier = Copier(default_registry(config, client))
        with Context.background().with_cancel() as ctx, _cancel_on_interrupt(ctx):
            try:
                info = copier.stat(ctx, parsed)
            except FsError as exc:
                _fail(exc)
                return

    table = Table(title=escape(parsed.redacted()))
    table.add_column("Name")
    table.add_column("Size", justify="right")
    table.add_column("Modified", justify="right")
    table.add_column("Type")
    table.add_row(
        escape(info.name),
        f"{human_readable_size(info.size)} ({info.size})",
        info.modified_at.isoformat(),
        "directory" if info.is_directory else "file",
    )
    console.print(table)


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@cli.group()
def config() -> None:
    """Inspect and change settings."""


@config.command("show")
@click.pass_obj
def config_show(config: ConfigManager) -> None:
    """Print the current settings."""
    console.print_json(json.dumps(config.get_all(), indent=2))


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def config_set(config: ConfigManager, key: str, value: str) -> None:
    """Set KEY to VALUE (parsed as JSON when possible)."""
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = value
    config.set(key, parsed)
    console.print(f"{key} = {parsed!r}")


@config.command("set-token")
@click.argument("token", required=False)
@click.option("--provider", default="yandex", show_default=True)
def config_set_token(token: Optional[str], provider: str) -> None:
    """Store an access token for PROVIDER in the OS keyring."""
    if not token:
        token = click.prompt(f"{provider} access token", hide_input=True)
    store_access_token(provider, token)
    console.print(f"Token stored for {provider}")


@config.command("clear-token")
@click.option("--provider", default="yandex", show_default=True)
def config_clear_token(provider: str) -> None:
    """Remove the stored access token for PROVIDER."""
    delete_access_token(provider)
    console.print(f"Token removed for {provider}")


def main() -> None:
    cli(prog_name="fscopy")


if __name__ == "__main__":  # pragma: no cover
    main()
