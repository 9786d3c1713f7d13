"""OAuth authentication for Google MCP.

This package runs the OAuth 2.0 + PKCE authorization flow for Google
Workspace services (Calendar, Gmail, Drive, Docs, Sheets) and keeps the
resulting credential fresh.

Quick Start:
    ```python
    from google_mcp.auth import OAuthManager, SERVICE_SCOPES

    manager = OAuthManager()

    # One-time interactive authorization
    await manager.authenticate()

    # Before each provider request
    await manager.ensure_scopes(SERVICE_SCOPES["calendar"])
    token = await manager.get_access_token()
    ```
"""

from google_mcp.auth.callback_server import CallbackListener, ListenerState
from google_mcp.auth.models import AuthStatus, CredentialRecord, TokenStatus
from google_mcp.auth.oauth_manager import OAuthManager
from google_mcp.auth.pages import ErrorPage, SuccessPage, TemplateLoader, render_result_page
from google_mcp.auth.pkce import PKCEChallenge, generate_pkce
from google_mcp.auth.scopes import (
    BASE_SCOPES,
    SERVICE_SCOPES,
    RequiredScopes,
    ScopeDiff,
    diff_scopes,
    has_all_scopes,
)
from google_mcp.auth.token_storage import CredentialStore

__all__ = [
    "OAuthManager",
    "CredentialStore",
    "CredentialRecord",
    "AuthStatus",
    "TokenStatus",
    "CallbackListener",
    "ListenerState",
    "PKCEChallenge",
    "generate_pkce",
    "RequiredScopes",
    "ScopeDiff",
    "diff_scopes",
    "has_all_scopes",
    "BASE_SCOPES",
    "SERVICE_SCOPES",
    "SuccessPage",
    "ErrorPage",
    "TemplateLoader",
    "render_result_page",
]
