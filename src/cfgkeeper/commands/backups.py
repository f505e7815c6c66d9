"""Backups subcommand group for cfgkeeper CLI.

Commands for listing and pruning the snapshots kept under
``{config_dir}/{config_id}/backups/``.
"""

from pathlib import Path

import typer

from cfgkeeper.cli_utils import (
    EXIT_ERROR,
    _error,
    _info,
    _resolve_config_dir,
    _success,
    console,
)
from cfgkeeper.core.config import (
    BACKUP_DIR_NAME,
    CONFIG_FILE_EXT,
    CONFIG_FILE_STEM,
    MAX_BACKUPS,
    BackupStore,
    ConfigData,
    JsoncCodec,
)
from cfgkeeper.core.exceptions import BackupError

backups_app = typer.Typer(
    name="backups",
    help="Config backup inspection and retention commands",
    no_args_is_help=True,
)


def _open_backup_store(config_id: str, config_dir: Path | None) -> BackupStore[ConfigData]:
    """Build a schema-less BackupStore for ``config_id``."""
    base_dir = _resolve_config_dir(config_dir) / config_id
    return BackupStore(
        base_dir / f"{CONFIG_FILE_STEM}.{CONFIG_FILE_EXT}",
        base_dir / BACKUP_DIR_NAME,
        config_id,
        ConfigData,
        JsoncCodec(),
    )


@backups_app.command("list")
def backups_list(
    config_id: str = typer.Argument(..., help="Config id (subdirectory name)"),
    config_dir: Path | None = typer.Option(
        None,
        "--config-dir",
        "-d",
        help="Config root directory (default: $CFGKEEPER_CONFIG_DIR or ./config)",
    ),
) -> None:
    """List snapshots for a config, newest first."""
    from rich.table import Table

    store = _open_backup_store(config_id, config_dir)
    backups = store.list_backups()
    if not backups:
        _info(f"No backups found in {store.backup_dir}")
        return

    table = Table(title=f"Backups for {config_id}")
    table.add_column("Reason", style="cyan", no_wrap=True)
    table.add_column("Timestamp", style="green", no_wrap=True)
    table.add_column("File", style="yellow")

    for backup in backups:
        table.add_row(
            backup.reason or "-",
            backup.timestamp or "-",
            backup.path.name,
        )

    console.print(table)


@backups_app.command("prune")
def backups_prune(
    config_id: str = typer.Argument(..., help="Config id (subdirectory name)"),
    keep: int = typer.Option(
        MAX_BACKUPS,
        "--keep",
        "-k",
        min=0,
        help="Number of newest snapshots to keep",
    ),
    config_dir: Path | None = typer.Option(
        None,
        "--config-dir",
        "-d",
        help="Config root directory (default: $CFGKEEPER_CONFIG_DIR or ./config)",
    ),
) -> None:
    """Delete all but the newest snapshots for a config."""
    store = _open_backup_store(config_id, config_dir)
    try:
        removed = store.prune(keep)
    except BackupError as e:
        _error(str(e))
        raise typer.Exit(code=EXIT_ERROR) from None

    if removed:
        _success(f"Removed {len(removed)} backup(s), kept at most {keep}")
    else:
        _info("Nothing to prune")
