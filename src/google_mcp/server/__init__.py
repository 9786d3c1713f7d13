"""MCP server implementation for Google Workspace.

Tools:

Calendar: list_calendars, list_events, create_event
Gmail: search_gmail_messages, get_gmail_message, send_email, list_gmail_labels
Drive: search_drive_files, create_drive_folder
Docs: get_document
Sheets: get_sheet_values, update_sheet_values
Auth: get_auth_status

Transport: Stdio
Authentication: OAuth 2.0 + PKCE with automatic token refresh
"""

from google_mcp.auth import OAuthManager
from google_mcp.server.google_workspace_server import (
    GoogleWorkspaceServer,
    main,
)


def create_server(manager: OAuthManager | None = None) -> GoogleWorkspaceServer:
    """Create and configure a Google Workspace MCP server.

    Args:
        manager: OAuth manager to share with the server. Created from the
            environment if not provided.

    Returns:
        GoogleWorkspaceServer: Configured server instance ready to run.

    Example:
        >>> server = create_server()
        >>> asyncio.run(server.run())
    """
    return GoogleWorkspaceServer(manager=manager)


__all__ = ["create_server", "GoogleWorkspaceServer", "main"]
