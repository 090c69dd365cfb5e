"""Command-line interface for running mcp-engine servers."""

from .cli import main

__all__ = ["main"]
