"""
CLI module for Sigrun.

Provides the command-line interface using Click.
"""

from sigrun.cli.main import cli, main

__all__ = ["main", "cli"]
