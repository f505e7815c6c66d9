"""Self-healing config store: one managed JSONC file per config id.

ConfigStore keeps a typed ConfigData value synchronized with
``{config_dir}/{config_id}/config.jsonc``:

- ``reload()`` re-reads the file when its size/mtime fingerprint changed,
  migrates outdated versions, and self-heals corrupt content.
- ``save(config)`` adopts ``config`` and rewrites the file with comments.
- An optional watcher reloads after external edits; an optional autosaver
  persists in-memory mutations.

Self-heal chain (for empty_file, parse_error, json_error, reload_error):
    1. snapshot the bad file tagged with the reason
    2. adopt the newest other backup, if it is valid
    3. else adopt the last config that loaded cleanly, if it is not the default
    4. else adopt the compiled-in default
    The adopted config is written back immediately.

Thread Safety:
    A single re-entrant lock serializes reload, save, migration, self-heal and
    restore, so the last operation to finish wins. ``get_current_config()``
    is a lock-free reference read.

Usage:
    from cfgkeeper.core.config import ConfigData, ConfigStore

    class AppConfig(ConfigData):
        greeting: str = "hello"

    with ConfigStore("1.0", AppConfig(version="1.0", config_id="app"), Path("config")) as store:
        config = store.get_current_config()
        config.greeting = "hi"
        store.save(config)
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from types import TracebackType
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from cfgkeeper.core.config.autosave import AutoSaver
from cfgkeeper.core.config.backups import BackupStore
from cfgkeeper.core.config.constants import (
    BACKUP_DIR_NAME,
    CONFIG_FILE_EXT,
    CONFIG_FILE_STEM,
    DEFAULT_CONFIG_DIR,
)
from cfgkeeper.core.config.jsonc import CommentIndex, JsoncCodec
from cfgkeeper.core.config.migration import VERSION_KEY, MigrationEngine
from cfgkeeper.core.config.models import ConfigData, ConfigMetadata, content_hash
from cfgkeeper.core.config.watcher import ChangeWatcher
from cfgkeeper.core.exceptions import (
    ConfigStoreError,
    EmptyFileError,
    ParseError,
    ReloadError,
    RestoreError,
    SaveError,
)
from cfgkeeper.core.io import atomic_write

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=ConfigData)

# (st_mtime_ns, st_size); (0, -1) never matches a real file
_NO_FINGERPRINT = (0, -1)


class ConfigStore(Generic[T]):
    """Owner of one config's in-memory value, file, backups and background tasks.

    Attributes:
        current_version: Schema version compiled into the application.
        default_config: Compiled-in default; never mutated by the store.
        config_class: Concrete ConfigData subclass (type of the default).
        config_id: Identifier used for file and directory naming.
        metadata: File formatting and background task settings.

    """

    def __init__(
        self,
        current_version: str,
        default_config: T,
        config_dir: Path | str = DEFAULT_CONFIG_DIR,
        metadata: ConfigMetadata | None = None,
    ) -> None:
        """Load (or create) the config file and start configured tasks.

        Args:
            current_version: Schema version the application expects.
            default_config: Default config; must carry ``current_version``.
            config_dir: Root directory; the file lives in ``{config_dir}/{config_id}/``.
            metadata: Formatting settings. Defaults to ConfigMetadata.default().

        """
        self.current_version = current_version
        self.default_config = default_config.model_copy(deep=True)
        self.config_class: type[T] = type(default_config)
        self.config_id = default_config.config_id
        self.metadata = metadata or ConfigMetadata.default(self.config_id)
        self._logger = logger.getChild(self.config_id)

        base_dir = Path(config_dir) / self.config_id
        self._config_file = base_dir / f"{CONFIG_FILE_STEM}.{CONFIG_FILE_EXT}"
        self._backup_dir = base_dir / BACKUP_DIR_NAME

        self._codec = JsoncCodec(self.metadata, current_version)
        self._backups: BackupStore[T] = BackupStore(
            self._config_file,
            self._backup_dir,
            self.config_id,
            self.config_class,
            self._codec,
        )
        self._migrations: MigrationEngine[T] = MigrationEngine(current_version, self.default_config)

        self._lock = threading.RLock()
        self._current: T = self.default_config.model_copy(deep=True)
        self._last_valid: T = self.default_config.model_copy(deep=True)
        self._last_saved_hash = content_hash(self.default_config)
        self._comments: CommentIndex = {}
        self._fingerprint: tuple[int, int] = _NO_FINGERPRINT

        self._tasks_lock = threading.Lock()
        self._watcher: ChangeWatcher | None = None
        self._autosaver: AutoSaver | None = None
        self._closed = False

        self._initialize()

        settings = self.metadata.watcher_settings
        if settings.enabled:
            self.enable_watcher()
        if settings.auto_save_enabled:
            self.enable_auto_save()

    def __enter__(self) -> ConfigStore[T]:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.cleanup()

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def config_file(self) -> Path:
        return self._config_file

    @property
    def backup_dir(self) -> Path:
        return self._backup_dir

    @property
    def backups(self) -> BackupStore[T]:
        return self._backups

    @property
    def comments(self) -> CommentIndex:
        """Copy of the per-property comments carried between saves."""
        return dict(self._comments)

    @property
    def watcher_running(self) -> bool:
        watcher = self._watcher
        return watcher is not None and watcher.is_running

    @property
    def auto_save_running(self) -> bool:
        autosaver = self._autosaver
        return autosaver is not None and autosaver.is_running

    # =========================================================================
    # Public operations
    # =========================================================================

    def get_current_config(self) -> T:
        """Return the live config. Never blocks, never fails."""
        return self._current

    def has_unsaved_changes(self) -> bool:
        """True if the live config differs from what was last written."""
        return content_hash(self._current) != self._last_saved_hash

    def file_changed(self) -> bool:
        """True if the file's size/mtime differ from the last observed values.

        Does not update the stored fingerprint; ``reload()`` does that.
        """
        fingerprint = self._stat_fingerprint()
        return fingerprint is not None and fingerprint != self._fingerprint

    def reload(self) -> None:
        """Synchronize the in-memory config with the file.

        Writes the default if the file is missing, returns immediately if the
        file is unchanged since the last check, otherwise parses it, migrating
        or self-healing as needed. Never raises.
        """
        with self._lock:
            if not self._config_file.exists():
                self._logger.info("Config file %s not found, writing defaults", self._config_file)
                self._comments = {}
                self._adopt(self.default_config.model_copy(deep=True))
                return

            if not self._consume_file_change():
                return

            try:
                self._load_from_disk()
            except ConfigStoreError as e:
                self._logger.warning("Reload failed (%s): %s", e.reason, e)
                self._self_heal(e.reason)
            except Exception as e:
                self._logger.error("Unexpected reload failure: %s", e)
                if self._config_file.exists():
                    self._self_heal(ReloadError.reason)

    def reload_manually(self) -> None:
        """Caller-triggered refresh outside the watcher; same as reload()."""
        self.reload()

    def save(self, config: T) -> None:
        """Adopt ``config`` as current and write it to disk.

        Write failures are logged; the in-memory value stays authoritative.
        """
        with self._lock:
            self._current = config
            self._persist(config)

    def restore_backup(self, path: Path) -> T:
        """Adopt a specific backup snapshot.

        The live file is snapshotted as ``pre_restore`` first. Snapshots written
        under another schema version are migrated.

        Args:
            path: Snapshot file to restore.

        Returns:
            The adopted config.

        Raises:
            RestoreError: If the snapshot cannot be read or does not validate.

        """
        with self._lock:
            data = self._backups.read_backup(path)
            try:
                if data.get(VERSION_KEY) != self.current_version:
                    config = self._migrations.reconcile(data, self._current).config
                else:
                    config = self.config_class.model_validate(data)
            except (ParseError, ValidationError) as e:
                raise RestoreError(f"Backup {path.name} does not hold a valid config: {e}") from e

            self._backups.snapshot("pre_restore")
            self._commit(config)
            self._persist(config)
            self._logger.info("Restored configuration from %s", path.name)
            return config

    def enable_watcher(self) -> None:
        """Start the file watcher. No-op if it is already running."""
        with self._tasks_lock:
            if self._closed:
                self._logger.warning("Cannot enable watcher: store has been cleaned up")
                return
            if self._watcher is not None and self._watcher.is_running:
                return
            self._watcher = ChangeWatcher(
                self._config_file,
                has_changed=self.file_changed,
                on_change=self.reload,
                debounce_seconds=self.metadata.watcher_settings.debounce_seconds,
            )
            self._watcher.start()

    def disable_watcher(self) -> None:
        """Stop the file watcher and wait for it to exit."""
        with self._tasks_lock:
            watcher, self._watcher = self._watcher, None
        if watcher is not None:
            watcher.stop()

    def enable_auto_save(self) -> None:
        """Start the autosave task. No-op if it is already running."""
        with self._tasks_lock:
            if self._closed:
                self._logger.warning("Cannot enable autosave: store has been cleaned up")
                return
            if self._autosaver is not None and self._autosaver.is_running:
                return
            self._autosaver = AutoSaver(
                has_unsaved_changes=self.has_unsaved_changes,
                save_current=self._save_if_changed,
                interval_seconds=self.metadata.watcher_settings.auto_save_interval_seconds,
                name=f"cfgkeeper-autosave-{self.config_id}",
            )
            self._autosaver.start()

    def disable_auto_save(self) -> None:
        """Stop the autosave task and wait for it to exit."""
        with self._tasks_lock:
            autosaver, self._autosaver = self._autosaver, None
        if autosaver is not None:
            autosaver.stop()

    def cleanup(self) -> None:
        """Stop all background tasks. The store cannot restart them afterwards."""
        with self._tasks_lock:
            self._closed = True
        self.disable_watcher()
        self.disable_auto_save()

    # =========================================================================
    # Internals
    # =========================================================================

    def _initialize(self) -> None:
        try:
            self._config_file.parent.mkdir(parents=True, exist_ok=True)
            self._backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self._logger.error("Cannot create config directories: %s", e)
        # reload() writes the default when the file is missing
        self.reload()

    def _stat_fingerprint(self) -> tuple[int, int] | None:
        try:
            stat = self._config_file.stat()
        except OSError:
            return None
        return (stat.st_mtime_ns, stat.st_size)

    def _consume_file_change(self) -> bool:
        fingerprint = self._stat_fingerprint()
        if fingerprint is None:
            self._logger.error("Error checking file changes for %s", self._config_file)
            return False
        if fingerprint == self._fingerprint:
            return False
        self._fingerprint = fingerprint
        return True

    def _read_config_file(self) -> str:
        try:
            return self._config_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ReloadError(f"Cannot read {self._config_file}: {e}") from e

    def _load_from_disk(self) -> None:
        content = self._read_config_file()
        if not content.strip():
            raise EmptyFileError(f"Config file {self._config_file} is empty")

        data, comments = self._codec.decode(content)

        if data.get(VERSION_KEY) != self.current_version:
            self._migrate(data, comments)
            return

        try:
            config = self.config_class.model_validate(data)
        except ValidationError as e:
            raise ParseError(f"Config does not match the schema: {e}") from e

        self._comments = comments
        self._commit(config)
        self._last_saved_hash = content_hash(config)
        self._logger.debug("Reloaded configuration from %s", self._config_file)

    def _migrate(self, data: dict[str, Any], comments: CommentIndex) -> None:
        self._backups.snapshot("pre_migration")
        result = self._migrations.reconcile(data, self._current)
        self._comments = comments
        self._commit(result.config)
        self._persist(result.config)

    def _self_heal(self, reason: str) -> None:
        snapshot = self._backups.snapshot(reason)

        restored = self._backups.restore_latest_valid(skip=snapshot)
        if restored is not None and restored.version != self.current_version:
            try:
                restored = self._migrations.reconcile(restored.to_json_dict(), self._current).config
            except ParseError as e:
                self._logger.warning("Cannot migrate restored backup: %s", e)
                restored = None

        if restored is not None:
            self._commit(restored)
            self._persist(restored)
            self._logger.info("Restored configuration from backup after %s", reason)
        elif self._last_valid != self.default_config:
            last_known_good = self._last_valid.model_copy(deep=True)
            self._current = last_known_good
            self._persist(last_known_good)
            self._logger.info("Restored last valid configuration after %s", reason)
        else:
            self._current = self.default_config.model_copy(deep=True)
            self._persist(self._current)
            self._logger.info(
                "Reset to default configuration after %s - no valid backups or "
                "previous configurations available",
                reason,
            )

    def _save_if_changed(self) -> None:
        """Persist the live config if it differs from the last write.

        The check and the write happen under the store lock, so a reload that
        lands between an autosave tick and its write is never overwritten.
        """
        with self._lock:
            if self.has_unsaved_changes():
                self._persist(self._current)

    def _commit(self, config: T) -> None:
        """Make ``config`` current and last-known-good."""
        self._current = config
        self._last_valid = config.model_copy(deep=True)

    def _adopt(self, config: T) -> None:
        self._current = config
        self._persist(config)

    def _persist(self, config: T) -> None:
        try:
            self._write(config)
        except SaveError as e:
            self._logger.error("Save failed: %s", e)

    def _write(self, config: T) -> None:
        content = self._codec.serialize(config, self._comments)
        try:
            atomic_write(self._config_file, content)
        except OSError as e:
            raise SaveError(f"Cannot write {self._config_file}: {e}") from e
        self._last_saved_hash = content_hash(config)
        self._fingerprint = self._stat_fingerprint() or self._fingerprint
