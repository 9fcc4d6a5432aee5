"""HTTP and MCP server for the tabular gateway."""

from .main import main

__all__ = ["main"]
