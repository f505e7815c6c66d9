"""Core module for cfgkeeper.

This module provides:
- The custom exception hierarchy with CfgKeeperError as base
- Atomic file write and timestamp helpers
- The configuration persistence engine (see cfgkeeper.core.config)
"""

from cfgkeeper.core.exceptions import (
    BackupError,
    CfgKeeperError,
    ConfigStoreError,
    EmptyFileError,
    JsonSyntaxError,
    ParseError,
    ReloadError,
    RestoreError,
    SaveError,
)

__all__ = [
    "CfgKeeperError",
    "ConfigStoreError",
    "EmptyFileError",
    "ParseError",
    "JsonSyntaxError",
    "ReloadError",
    "BackupError",
    "RestoreError",
    "SaveError",
]
