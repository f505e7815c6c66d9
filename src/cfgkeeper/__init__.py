"""cfgkeeper - self-healing, comment-preserving JSONC configuration files."""

__version__ = "0.1.0"
