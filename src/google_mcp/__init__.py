"""Google MCP Server - Google Workspace APIs over the Model Context Protocol."""

from google_mcp.__version__ import __version__

__all__ = ["__version__"]
