"""Command-line interface for CodeMorph."""

from codemorph.cli.main import cli, main

__all__ = ["cli", "main"]
