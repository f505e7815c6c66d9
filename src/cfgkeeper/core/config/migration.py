"""Schema version migration for managed config files.

When the file on disk carries a different ``version`` than the running code,
the engine reconciles three sources at the top level only:

    old      - the mapping just parsed from disk
    current  - the config held in memory
    default  - the compiled-in default

For each top-level key the old value wins if the file had it, then the current
value, then the default. Nested objects are replaced wholesale, never merged
field by field. The result is always tagged with the current version.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from cfgkeeper.core.config.models import ConfigData
from cfgkeeper.core.exceptions import ParseError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=ConfigData)

VERSION_KEY = "version"


@dataclass(frozen=True)
class MigrationResult(Generic[T]):
    """Outcome of a version reconciliation.

    Attributes:
        config: The migrated config, tagged with the current version.
        migrated_fields: Top-level keys whose values were carried over from disk.
        skipped_fields: Keys present on disk that the current schema no longer has.

    """

    config: T
    migrated_fields: frozenset[str] = field(default_factory=frozenset)
    skipped_fields: frozenset[str] = field(default_factory=frozenset)


class MigrationEngine(Generic[T]):
    """Reconcile an old-version config with the in-memory and default configs."""

    def __init__(self, current_version: str, default_config: T) -> None:
        self.current_version = current_version
        self.default_config = default_config
        self.config_class: type[T] = type(default_config)

    def merge(self, old: Mapping[str, Any], new: Mapping[str, Any]) -> dict[str, Any]:
        """Overlay ``old`` onto the shape of ``new``.

        Every top-level key of ``old`` that ``new`` also has (except version)
        takes ``old``'s value. Keys only in ``old`` are dropped.

        Returns:
            New dict with ``version`` forced to the current version.

        """
        result = copy.deepcopy(dict(new))
        for key, value in old.items():
            if key != VERSION_KEY and key in result:
                result[key] = copy.deepcopy(value)
        result[VERSION_KEY] = self.current_version
        return result

    def reconcile(self, old_data: Mapping[str, Any], current: T) -> MigrationResult[T]:
        """Compute merge(merge(old, current), default) and validate it.

        Args:
            old_data: Raw mapping parsed from the outdated file.
            current: Config presently held in memory.

        Returns:
            MigrationResult with the validated config.

        Raises:
            ParseError: If the reconciled mapping does not validate.

        """
        current_data = current.to_json_dict()
        merged = self.merge(
            self.merge(old_data, current_data),
            self.default_config.to_json_dict(),
        )
        try:
            config = self.config_class.model_validate(merged)
        except ValidationError as e:
            raise ParseError(f"Migrated config does not match the schema: {e}") from e

        keys = {key for key in old_data if key != VERSION_KEY}
        result = MigrationResult(
            config=config,
            migrated_fields=frozenset(keys & current_data.keys()),
            skipped_fields=frozenset(keys - current_data.keys()),
        )
        logger.info(
            "Migrated config %s from version %s to %s (%d fields kept, %d dropped)",
            config.config_id,
            old_data.get(VERSION_KEY),
            self.current_version,
            len(result.migrated_fields),
            len(result.skipped_fields),
        )
        return result
