"""Shared CLI helpers: exit codes, console output, logging setup, path resolution."""

import logging
import os
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from cfgkeeper.core.config.constants import CONFIG_DIR_ENV, DEFAULT_CONFIG_DIR

# Exit codes
EXIT_SUCCESS: int = 0
EXIT_ERROR: int = 1
EXIT_CONFIG_ERROR: int = 2

console = Console()


def _error(message: str) -> None:
    """Print an error message in red."""
    console.print(f"[red]Error:[/red] {message}")


def _warning(message: str) -> None:
    """Print a warning message in yellow."""
    console.print(f"[yellow]Warning:[/yellow] {message}")


def _success(message: str) -> None:
    """Print a success message in green."""
    console.print(f"[green]{message}[/green]")


def _info(message: str) -> None:
    """Print an informational message in blue."""
    console.print(f"[blue]{message}[/blue]")


def _setup_logging(verbose: bool, quiet: bool) -> None:
    """Configure root logging with a Rich handler.

    Args:
        verbose: Log at DEBUG. Takes precedence over ``quiet``.
        quiet: Log at WARNING.

    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


def _resolve_config_dir(config_dir: Path | None) -> Path:
    """Pick the config root: explicit option, then environment, then default.

    Args:
        config_dir: Value of ``--config-dir``, if given.

    Returns:
        Directory holding ``{config_id}/`` subdirectories.

    """
    if config_dir is not None:
        return config_dir
    from_env = os.environ.get(CONFIG_DIR_ENV)
    if from_env:
        return Path(from_env)
    return DEFAULT_CONFIG_DIR


def _read_file(path: Path) -> str:
    """Read a text file or exit with EXIT_ERROR.

    Raises:
        typer.Exit: If the file is missing or unreadable.

    """
    if not path.is_file():
        _error(f"File not found: {path}")
        raise typer.Exit(code=EXIT_ERROR)
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        _error(f"Cannot read {path}: {e}")
        raise typer.Exit(code=EXIT_ERROR) from None
