"""Typer CLI entry point for cfgkeeper.

Operator commands over managed JSONC config files. The CLI only parses
arguments and delegates to cfgkeeper.core.config; no engine logic here.
"""

import logging
from pathlib import Path

import typer

from cfgkeeper.cli_utils import (
    EXIT_CONFIG_ERROR,
    _error,
    _read_file,
    _setup_logging,
    _success,
    _warning,
    console,
)
from cfgkeeper.core.config import JsoncCodec, extract_section
from cfgkeeper.core.exceptions import ConfigStoreError

logger = logging.getLogger(__name__)


app = typer.Typer(
    name="cfgkeeper",
    help="Inspect and maintain self-healing JSONC configuration files",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log warnings and errors"),
) -> None:
    """Inspect and maintain self-healing JSONC configuration files."""
    _setup_logging(verbose, quiet)
    if ctx.invoked_subcommand is None:
        raise typer.Exit()


@app.command()
def extract(
    file: Path = typer.Argument(..., help="Managed config file"),
) -> None:
    """Print the machine-relevant part of a managed config file.

    That is everything between the CONFIG_SECTION header comment and the
    END_CONFIG_SECTION footer comment.
    """
    content = _read_file(file)
    section = extract_section(content)
    if section is None:
        _error(f"No CONFIG_SECTION marker found in {file}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR)
    typer.echo(section)


@app.command()
def check(
    file: Path = typer.Argument(..., help="JSONC config file to validate"),
) -> None:
    """Strip comments, parse the JSON payload and report what was found.

    Exits with code 2 if the content is empty, not valid JSON, or not a JSON
    object.
    """
    content = _read_file(file)
    codec = JsoncCodec()
    try:
        data, comments = codec.decode(content)
    except ConfigStoreError as e:
        _error(f"{file} is not a valid config file ({e.reason}): {e}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None

    logger.debug("Parsed %d top-level keys from %s", len(data), file)

    version = data.get("version")
    config_id = data.get("configId")
    if version is None or config_id is None:
        _warning("Missing 'version' or 'configId' field")

    console.print(f"version:  {version}", markup=False, highlight=False)
    console.print(f"configId: {config_id}", markup=False, highlight=False)
    console.print(f"keys:     {len(data)}", markup=False, highlight=False)
    for path, comment in sorted(comments.items()):
        first_line, *_ = comment.splitlines()
        console.print(f"  // {path}: {first_line}", markup=False, highlight=False)
    _success(f"{file} is valid")


# Subcommand groups are registered after the main commands
from cfgkeeper.commands.backups import backups_app  # noqa: E402

app.add_typer(backups_app, name="backups")


if __name__ == "__main__":
    app()
