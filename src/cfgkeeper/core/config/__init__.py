"""Self-healing JSONC configuration engine.

This package keeps one typed configuration object per config id synchronized
with a commented JSONC file, with timestamped backups, version migration,
an optional file watcher and an optional autosaver.

Usage:
    from cfgkeeper.core.config import ConfigData, ConfigStore

    class AppConfig(ConfigData):
        greeting: str = "hello"

    store = ConfigStore("1.0", AppConfig(version="1.0", config_id="app"))
    print(store.get_current_config().greeting)
    store.cleanup()
"""

from cfgkeeper.core.config.autosave import AutoSaver
from cfgkeeper.core.config.backups import BackupInfo, BackupStore
from cfgkeeper.core.config.constants import (
    BACKUP_DIR_NAME,
    CONFIG_DIR_ENV,
    CONFIG_FILE_EXT,
    CONFIG_FILE_STEM,
    DEFAULT_CONFIG_DIR,
    MAX_BACKUPS,
    SECTION_END_MARKER,
    SECTION_START_MARKER,
)
from cfgkeeper.core.config.jsonc import (
    CommentIndex,
    JsoncCodec,
    extract_section,
    parse_jsonc,
    serialize_jsonc,
)
from cfgkeeper.core.config.migration import MigrationEngine, MigrationResult

# Models
from cfgkeeper.core.config.models import (
    ConfigData,
    ConfigMetadata,
    WatcherSettings,
    content_hash,
)
from cfgkeeper.core.config.store import ConfigStore
from cfgkeeper.core.config.tasks import BackgroundTask
from cfgkeeper.core.config.watcher import ChangeWatcher, ConfigFileEventHandler

__all__ = [
    # Constants
    "BACKUP_DIR_NAME",
    "CONFIG_DIR_ENV",
    "CONFIG_FILE_EXT",
    "CONFIG_FILE_STEM",
    "DEFAULT_CONFIG_DIR",
    "MAX_BACKUPS",
    "SECTION_END_MARKER",
    "SECTION_START_MARKER",
    # Models
    "ConfigData",
    "ConfigMetadata",
    "WatcherSettings",
    "content_hash",
    # Codec
    "CommentIndex",
    "JsoncCodec",
    "extract_section",
    "parse_jsonc",
    "serialize_jsonc",
    # Backups and migration
    "BackupInfo",
    "BackupStore",
    "MigrationEngine",
    "MigrationResult",
    # Background tasks
    "AutoSaver",
    "BackgroundTask",
    "ChangeWatcher",
    "ConfigFileEventHandler",
    # Engine
    "ConfigStore",
]
