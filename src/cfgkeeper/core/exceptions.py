"""Exception hierarchy for cfgkeeper.

All engine failures derive from ConfigStoreError and carry a short ``reason``
tag. The tag doubles as the middle part of a backup file name
(``{config_id}_{reason}_{timestamp}.jsonc``), so it must stay filename-safe.
"""


class CfgKeeperError(Exception):
    """Base exception for all cfgkeeper errors."""

    pass


class ConfigStoreError(CfgKeeperError):
    """Base exception for configuration store failures.

    Attributes:
        reason: Filename-safe tag describing the failure class.

    """

    reason = "store_error"

    def __init__(self, message: str, reason: str | None = None) -> None:
        """Initialize with a message and optional reason override."""
        super().__init__(message)
        if reason is not None:
            self.reason = reason


class EmptyFileError(ConfigStoreError):
    """Raised when a config file has no content left after comment stripping."""

    reason = "empty_file"


class ParseError(ConfigStoreError):
    """Raised when content is well-formed JSON but not a valid config for the schema."""

    reason = "parse_error"


class JsonSyntaxError(ConfigStoreError):
    """Raised when stripped content is not well-formed JSON."""

    reason = "json_error"


class ReloadError(ConfigStoreError):
    """Raised for any other I/O or unexpected failure during reload."""

    reason = "reload_error"


class BackupError(ConfigStoreError):
    """Raised when a snapshot cannot be written or pruned."""

    reason = "backup_error"


class RestoreError(ConfigStoreError):
    """Raised when a backup cannot be read or does not hold a valid config."""

    reason = "restore_error"


class SaveError(ConfigStoreError):
    """Raised when the config file cannot be written."""

    reason = "save_error"
