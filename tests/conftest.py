"""Pytest configuration and fixtures for cfgkeeper tests."""

import os
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from pydantic import BaseModel, Field

from cfgkeeper.core.config import ConfigData, ConfigMetadata, ConfigStore

VERSION = "1.0"
CONFIG_ID = "test"


class ServerSettings(BaseModel):
    """Nested section used to exercise dotted comment paths and shallow merges."""

    host: str = "localhost"
    port: int = 8080


class SampleConfig(ConfigData):
    """Application payload used throughout the test suite."""

    test_setting: str = Field(default="default", alias="testSetting")
    numeric_setting: int = Field(default=42, alias="numericSetting")
    server: ServerSettings = Field(default_factory=ServerSettings)


@pytest.fixture
def default_config() -> SampleConfig:
    """Compiled-in default for the sample application."""
    return SampleConfig(version=VERSION, config_id=CONFIG_ID)


@pytest.fixture
def metadata() -> ConfigMetadata:
    """Metadata with a header line and one section comment, no background tasks."""
    return ConfigMetadata(
        header_comments=["Test configuration"],
        section_comments={"numericSetting": "Numeric knob"},
    )


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    """Root directory for managed config files."""
    return tmp_path / "config"


@pytest.fixture
def store(
    config_dir: Path, default_config: SampleConfig, metadata: ConfigMetadata
) -> Iterator[ConfigStore[SampleConfig]]:
    """ConfigStore over a fresh directory; background tasks stopped afterwards."""
    config_store = ConfigStore(VERSION, default_config, config_dir, metadata)
    yield config_store
    config_store.cleanup()


@pytest.fixture
def rewrite() -> Callable[[Path, str], None]:
    """Return a helper that replaces a file's content as an external editor would.

    The modification time is pushed at least one second past the previous
    value so coarse filesystem timestamps never hide the edit.
    """

    def _rewrite(path: Path, content: str) -> None:
        before = path.stat().st_mtime_ns if path.exists() else 0
        path.write_text(content, encoding="utf-8")
        bumped = max(path.stat().st_mtime_ns, before + 1_000_000_000)
        os.utime(path, ns=(bumped, bumped))

    return _rewrite
