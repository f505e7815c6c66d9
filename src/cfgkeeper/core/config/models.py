"""Pydantic models for the configuration engine.

ConfigData is the base class every application payload derives from. The two
metadata models (ConfigMetadata, WatcherSettings) describe how the engine
formats the file and which background tasks it runs; they are frozen because
the engine reads them once at construction.
"""

import hashlib
import json
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field

from cfgkeeper.core.config.constants import (
    DEFAULT_AUTO_SAVE_INTERVAL_MS,
    DEFAULT_DEBOUNCE_MS,
)


class ConfigData(BaseModel):
    """Base class for application configuration payloads.

    Subclasses add their own fields after the two mandatory ones. Field
    declaration order is the key order written to disk.

    Attributes:
        version: Schema version the payload was written under.
        config_id: Stable identifier used for file and directory naming.
            Serialized as ``configId``.

    Example:
        >>> class ServerConfig(ConfigData):
        ...     port: int = 8080
        >>> ServerConfig(version="1.0", config_id="server").to_json_dict()
        {'version': '1.0', 'configId': 'server', 'port': 8080}

    """

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    version: str
    config_id: str = Field(alias="configId")

    def to_json_dict(self) -> dict[str, Any]:
        """Dump to a JSON-compatible dict using on-disk key names."""
        return self.model_dump(mode="json", by_alias=True)


def content_hash(config: ConfigData) -> str:
    """Hash the canonical serialized form of a config.

    Args:
        config: Config instance to hash.

    Returns:
        Hex SHA-256 digest; equal configs always hash equal.

    """
    canonical = json.dumps(
        config.to_json_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class WatcherSettings(BaseModel):
    """Background task settings.

    Attributes:
        enabled: Start the file watcher at construction.
        debounce_ms: Delay after a change event before the file is re-read.
        auto_save_enabled: Start the autosave task at construction.
        auto_save_interval_ms: Period between autosave checks.

    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False, description="Watch the config file for edits")
    debounce_ms: int = Field(
        default=DEFAULT_DEBOUNCE_MS,
        ge=0,
        description="Debounce window for bursts of change events",
    )
    auto_save_enabled: bool = Field(
        default=False, description="Periodically persist in-memory changes"
    )
    auto_save_interval_ms: int = Field(
        default=DEFAULT_AUTO_SAVE_INTERVAL_MS,
        gt=0,
        description="Autosave check interval",
    )

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000

    @property
    def auto_save_interval_seconds(self) -> float:
        return self.auto_save_interval_ms / 1000


class ConfigMetadata(BaseModel):
    """Formatting and behavior settings for a managed config file.

    Attributes:
        header_comments: Lines written inside the opening CONFIG_SECTION comment.
        footer_comments: Lines written inside the closing comment.
        section_comments: Dotted property path -> explanatory comment. Multi-line
            comments are written one ``//`` line per line.
        include_timestamp: Write a "Last updated" line in the header.
        include_version: Write a "Version" line in the header.
        watcher_settings: Background task settings.

    """

    model_config = ConfigDict(frozen=True)

    header_comments: list[str] = Field(default_factory=list)
    footer_comments: list[str] = Field(default_factory=list)
    section_comments: dict[str, str] = Field(default_factory=dict)
    include_timestamp: bool = True
    include_version: bool = True
    watcher_settings: WatcherSettings = Field(default_factory=WatcherSettings)

    @classmethod
    def default(cls, config_id: str) -> Self:
        """Build the stock metadata used when the caller supplies none."""
        return cls(
            header_comments=[
                f"Configuration file for {config_id}",
                "This file is automatically managed - custom comments will be preserved",
            ]
        )
