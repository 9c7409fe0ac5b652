"""Command-line interface for recdedup."""

from recdedup.cli.main import cli

__all__ = ["cli"]
