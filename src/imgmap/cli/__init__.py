"""
imgmap CLI Module.

Provides command-line interface for imgmap operations.
"""

from imgmap.cli.main import cli, main

__all__ = ["main", "cli"]
