"""Command-line interface for google-mcp-server."""
