"""Shared constants for configuration modules."""

from pathlib import Path

# Default root for {config_id}/config.jsonc when the caller does not pass one
DEFAULT_CONFIG_DIR: Path = Path("config")
CONFIG_DIR_ENV: str = "CFGKEEPER_CONFIG_DIR"

CONFIG_FILE_STEM: str = "config"
CONFIG_FILE_EXT: str = "jsonc"
BACKUP_DIR_NAME: str = "backups"

# Retention cap for snapshot files per config id
MAX_BACKUPS: int = 50

SECTION_START_MARKER: str = "CONFIG_SECTION"
SECTION_END_MARKER: str = "END_CONFIG_SECTION"

DEFAULT_DEBOUNCE_MS: int = 1000
DEFAULT_AUTO_SAVE_INTERVAL_MS: int = 30_000
