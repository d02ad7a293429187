"""Presentation layer package."""

from presentation.cli import main, node_main

__all__ = ["main", "node_main"]
