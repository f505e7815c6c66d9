"""Timestamped snapshots of a managed config file.

Snapshots are plain copies named ``{config_id}_{reason}_{YYYYMMDD_HHMMSS}.jsonc``
and live in ``{config_dir}/{config_id}/backups/``. After every snapshot the
directory is pruned to the newest MAX_BACKUPS files.

No operation here raises to the engine: snapshot failures are logged and an
unreadable backup is reported as "no backup available".
"""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from cfgkeeper.core.config.constants import CONFIG_FILE_EXT, MAX_BACKUPS
from cfgkeeper.core.config.jsonc import JsoncCodec
from cfgkeeper.core.config.models import ConfigData
from cfgkeeper.core.exceptions import BackupError, ConfigStoreError, RestoreError
from cfgkeeper.core.io import get_timestamp

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=ConfigData)


@dataclass(frozen=True)
class BackupInfo:
    """Metadata for one snapshot file.

    Attributes:
        path: Snapshot file path.
        reason: Reason tag parsed from the name ("" if the name is foreign).
        timestamp: YYYYMMDD_HHMMSS tag parsed from the name ("" if foreign).
        modified: Filesystem modification time.

    """

    path: Path
    reason: str
    timestamp: str
    modified: datetime


class BackupStore(Generic[T]):
    """Create, prune, list and restore snapshots for one config id.

    Attributes:
        config_file: Live config file being snapshotted.
        backup_dir: Directory holding snapshots.
        config_id: Prefix for snapshot names.
        max_backups: Retention cap.

    """

    def __init__(
        self,
        config_file: Path,
        backup_dir: Path,
        config_id: str,
        config_class: type[T],
        codec: JsoncCodec,
        *,
        max_backups: int = MAX_BACKUPS,
        extension: str = CONFIG_FILE_EXT,
    ) -> None:
        self.config_file = config_file
        self.backup_dir = backup_dir
        self.config_id = config_id
        self.config_class = config_class
        self.codec = codec
        self.max_backups = max_backups
        self.extension = extension
        self._name_pattern = re.compile(
            rf"^{re.escape(config_id)}_(?P<reason>.+)_(?P<timestamp>\d{{8}}_\d{{6}})"
            rf"\.{re.escape(extension)}$"
        )

    def backup_name(self, reason: str, now: datetime | None = None) -> str:
        """Build the snapshot file name for ``reason`` at ``now``."""
        return f"{self.config_id}_{reason}_{get_timestamp(now)}.{self.extension}"

    def _backup_files(self) -> list[Path]:
        if not self.backup_dir.is_dir():
            return []
        return [
            p for p in self.backup_dir.iterdir() if p.is_file() and p.suffix == f".{self.extension}"
        ]

    def _sort_key(self, path: Path) -> tuple[str, str]:
        match = self._name_pattern.match(path.name)
        return (match.group("timestamp") if match else "", path.name)

    def snapshot(self, reason: str, now: datetime | None = None) -> Path | None:
        """Copy the live config file into the backup directory.

        Args:
            reason: Tag describing why the snapshot was taken.
            now: Timestamp override (tests).

        Returns:
            Path of the new snapshot, or None if it could not be created.

        """
        try:
            target = self._copy_to_backup(reason, now)
        except BackupError as e:
            logger.error("Backup failed for %s: %s", self.config_id, e)
            return None
        logger.info("Created %s backup: %s", reason, target.name)

        try:
            self.prune()
        except BackupError as e:
            logger.error("Backup retention failed for %s: %s", self.config_id, e)
        return target

    def _copy_to_backup(self, reason: str, now: datetime | None) -> Path:
        if not self.config_file.exists():
            raise BackupError(f"Nothing to back up: {self.config_file} does not exist")
        target = self.backup_dir / self.backup_name(reason, now)
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(self.config_file, target)
        except OSError as e:
            raise BackupError(f"Cannot copy {self.config_file} to {target}: {e}") from e
        return target

    def prune(self, keep: int | None = None) -> list[Path]:
        """Delete all but the newest ``keep`` snapshots.

        Ordering uses the timestamp embedded in the name (then the name itself),
        so snapshots with different reasons interleave correctly.

        Args:
            keep: Number of snapshots to keep. Defaults to max_backups.

        Returns:
            Paths that were deleted.

        Raises:
            BackupError: If a snapshot cannot be deleted.

        """
        keep = self.max_backups if keep is None else keep
        files = sorted(self._backup_files(), key=self._sort_key, reverse=True)
        removed: list[Path] = []
        for path in files[keep:]:
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                raise BackupError(f"Cannot remove old backup {path}: {e}") from e
            removed.append(path)
        if removed:
            logger.debug("Pruned %d old backups for %s", len(removed), self.config_id)
        return removed

    def list_backups(self) -> list[BackupInfo]:
        """List snapshots, newest first.

        Returns:
            BackupInfo records; empty if the directory does not exist.

        """
        backups: list[BackupInfo] = []
        for path in sorted(self._backup_files(), key=self._sort_key, reverse=True):
            match = self._name_pattern.match(path.name)
            try:
                modified = datetime.fromtimestamp(path.stat().st_mtime)
            except OSError:
                continue
            backups.append(
                BackupInfo(
                    path=path,
                    reason=match.group("reason") if match else "",
                    timestamp=match.group("timestamp") if match else "",
                    modified=modified,
                )
            )
        return backups

    def read_backup(self, path: Path) -> dict[str, Any]:
        """Read a snapshot and decode it to a JSON object.

        Raises:
            RestoreError: If the file is unreadable, blank or not a JSON object.

        """
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise RestoreError(f"Failed to read backup file {path.name}: {e}") from e
        if not content.strip():
            raise RestoreError(f"Backup file is empty: {path.name}")
        try:
            data, _ = self.codec.decode(content)
        except ConfigStoreError as e:
            raise RestoreError(f"Invalid JSON in backup file {path.name}: {e}") from e
        return data

    def load_backup(self, path: Path) -> T:
        """Read a snapshot and validate it against the config schema.

        Raises:
            RestoreError: If the snapshot cannot be read or does not validate.

        """
        data = self.read_backup(path)
        try:
            return self.config_class.model_validate(data)
        except ValidationError as e:
            raise RestoreError(f"Backup {path.name} does not match the schema: {e}") from e

    def restore_latest_valid(self, skip: Path | None = None) -> T | None:
        """Load the most recently modified snapshot.

        Args:
            skip: Snapshot to ignore, typically the copy of a corrupt file that
                the caller has just taken.

        Returns:
            The restored config, or None if there are no snapshots or the newest
            one is blank or invalid.

        """
        candidates = [p for p in self._backup_files() if skip is None or p != skip]
        if not candidates:
            logger.info("No backups found in directory: %s", self.backup_dir)
            return None

        try:
            latest = max(candidates, key=lambda p: p.stat().st_mtime)
        except OSError as e:
            logger.error("Failed to restore from backup: %s", e)
            return None

        try:
            restored = self.load_backup(latest)
        except RestoreError as e:
            logger.warning("%s", e)
            return None

        logger.info("Successfully restored config from backup: %s", latest.name)
        return restored
