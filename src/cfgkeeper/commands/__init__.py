"""CLI subcommand groups for cfgkeeper."""
