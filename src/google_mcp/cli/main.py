"""Command-line interface for google-mcp-server."""

import asyncio
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import click
from dotenv import load_dotenv

from google_mcp.__version__ import __version__
from google_mcp.config import OAuthConfig, default_token_path
from google_mcp.errors import ConfigurationError, GoogleMCPError

CREDENTIALS_HELP = """Set environment variables (or add them to a .env file):
  export GOOGLE_CLIENT_ID='your-client-id'
  export GOOGLE_CLIENT_SECRET='your-client-secret'

Or pass as options:
  google-mcp setup --client-id=... --client-secret=..."""


def _token_path() -> Path:
    configured = os.environ.get("GOOGLE_MCP_TOKEN_PATH")
    return Path(configured).expanduser() if configured else default_token_path()


def _load_config(
    client_id: str | None = None,
    client_secret: str | None = None,
    port: int | None = None,
) -> OAuthConfig:
    """Build configuration from the environment plus command-line overrides."""
    env = dict(os.environ)
    if client_id:
        env["GOOGLE_CLIENT_ID"] = client_id
    if client_secret:
        env["GOOGLE_CLIENT_SECRET"] = client_secret
    if port is not None:
        env["OAUTH_CALLBACK_PORT"] = str(port)
    return OAuthConfig.from_env(env)


def _format_millis(value: int | None) -> str:
    if value is None:
        return "unknown"
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """Google MCP Server - Connect AI agents to Google Workspace APIs.

    Provides tools for:
    - Calendar (calendars, events)
    - Gmail (search, read, send, labels)
    - Drive (search, folders)
    - Docs (read)
    - Sheets (read, write)
    """
    load_dotenv()
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


@main.command()
@click.option("--client-id", envvar="GOOGLE_CLIENT_ID", help="Google OAuth client ID")
@click.option("--client-secret", envvar="GOOGLE_CLIENT_SECRET", help="Google OAuth client secret")
@click.option("--port", type=int, default=None, help="Use exactly this callback port")
@click.option("--no-browser", is_flag=True, help="Print the authorization URL instead of opening it")
@click.option("--force", is_flag=True, help="Re-authenticate without asking")
def setup(
    client_id: str | None,
    client_secret: str | None,
    port: int | None,
    no_browser: bool,
    force: bool,
) -> None:
    """Set up Google Workspace OAuth authentication.

    This will:
    1. Open browser for OAuth2 consent flow (PKCE)
    2. Store tokens at ./.tokens/calendar-tokens.json
    3. Refresh them automatically from then on
    """
    from google_mcp.auth import OAuthManager

    try:
        manager = OAuthManager(config=_load_config(client_id, client_secret, port))
    except ConfigurationError as e:
        click.echo(f"❌ Error: {e.message}")
        click.echo("")
        click.echo(CREDENTIALS_HELP)
        sys.exit(1)

    if not force and asyncio.run(manager.is_authenticated()):
        click.echo("✓ Already authenticated!")
        click.echo(f"Token stored at: {manager.token_path}")
        click.echo("")

        if not click.confirm("Re-authenticate?"):
            return

    click.echo("Starting OAuth authentication flow...")
    click.echo("")
    manager.set_progress_callback(click.echo)

    try:
        asyncio.run(manager.authenticate(open_browser=not no_browser))
    except GoogleMCPError as e:
        click.echo(f"❌ Authentication failed: {e.message}")
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nAuthentication cancelled.")
        sys.exit(1)

    click.echo("")
    click.echo(f"Token stored at: {manager.token_path}")
    click.echo("Run 'google-mcp status' to verify setup.")


@main.command()
def status() -> None:
    """Show authentication status.

    Reports whether tokens are stored, when they expire, and whether any
    required scopes are missing. Never refreshes or modifies the credential.
    """
    from google_mcp.auth import OAuthManager
    from google_mcp.auth.scopes import short_scope_name

    try:
        manager = OAuthManager(config=_load_config())
        auth_status = manager.get_auth_status()
    except GoogleMCPError as e:
        click.echo(f"❌ {e.message}")
        sys.exit(1)

    click.echo("Google MCP Status:")
    click.echo("")
    click.echo("Authentication:")
    click.echo(f"  Token file: {auth_status.token_path}")

    if not auth_status.has_tokens:
        click.echo("  ❌ Not authenticated")
        click.echo("")
        click.echo("Run 'google-mcp setup' to authenticate.")
        sys.exit(1)

    if auth_status.missing_scopes:
        click.echo("  ❌ Missing scopes:")
        for scope in auth_status.missing_scopes:
            click.echo(f"     - {short_scope_name(scope)}")
    elif auth_status.is_authenticated and not auth_status.needs_refresh:
        click.echo("  ✓ Authenticated")
    else:
        click.echo("  ⚠️  Token expired or expiring soon (will refresh automatically on use)")

    click.echo(f"  Token expires: {_format_millis(auth_status.token_expiry)}")
    click.echo(f"  Created: {_format_millis(auth_status.created_at)}")
    click.echo(f"  Scopes: {len(auth_status.scopes)} granted")
    click.echo(f"  Schema version: {auth_status.schema_version}")
    click.echo("")

    if auth_status.missing_scopes:
        click.echo("❌ Run 'google-mcp setup' to grant the missing scopes.")
        sys.exit(1)
    click.echo("✓ Ready to use!")


@main.command()
def logout() -> None:
    """Delete stored Google credentials."""
    from google_mcp.auth import CredentialStore, OAuthManager

    try:
        try:
            manager = OAuthManager(config=_load_config())
            removed = asyncio.run(manager.clear_tokens())
            token_path = manager.token_path
        except ConfigurationError:
            # Clearing needs no OAuth client
            store = CredentialStore(_token_path())
            removed = store.clear()
            token_path = store.token_path
    except GoogleMCPError as e:
        click.echo(f"❌ {e.message}")
        sys.exit(1)

    if removed:
        click.echo(f"✓ Removed credentials at {token_path}")
    else:
        click.echo("No stored credentials found.")


@main.command()
@click.option(
    "--authenticate",
    "run_authentication",
    is_flag=True,
    help="Run the OAuth flow first if not authenticated",
)
def mcp(run_authentication: bool) -> None:
    """Start the MCP server (stdio transport).

    Authentication is required before starting the server. Run
    'google-mcp setup' first, or pass --authenticate.

    This command is typically invoked by an MCP client.
    """
    from google_mcp.auth import OAuthManager
    from google_mcp.server import GoogleWorkspaceServer

    try:
        manager = OAuthManager(config=_load_config())
    except ConfigurationError as e:
        click.echo(f"❌ Error: {e.message}", err=True)
        sys.exit(1)

    async def serve() -> None:
        if not await manager.is_authenticated():
            if not run_authentication:
                raise click.ClickException(
                    "Not authenticated. Run 'google-mcp setup' first, or pass --authenticate."
                )
            manager.set_progress_callback(lambda msg: click.echo(msg, err=True))
            await manager.authenticate()

        await GoogleWorkspaceServer(manager=manager).run()

    try:
        click.echo("Starting Google MCP server...", err=True)
        asyncio.run(serve())
    except click.ClickException as e:
        click.echo(f"❌ {e.message}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nServer stopped.", err=True)
    except GoogleMCPError as e:
        click.echo(f"❌ Server error: {e.message}", err=True)
        sys.exit(1)


@main.command()
@click.option("--dry-run", is_flag=True, help="Show what would be migrated without making changes")
def migrate(dry_run: bool) -> None:
    """Upgrade the stored credential file to the current format.

    Older releases stored tokens in a different layout. Credentials are
    migrated automatically on first use; this command does it explicitly.

    Use --dry-run to preview what changes would be made without applying them.
    """
    from google_mcp.auth import CredentialRecord, CredentialStore

    store = CredentialStore(_token_path())
    runner = store.migration_runner

    try:
        raw = store.read_raw()
    except GoogleMCPError as e:
        click.echo(f"❌ {e.message}")
        sys.exit(1)

    if raw is None:
        click.echo(f"No credential file found at {store.token_path}.")
        return

    pending = runner.get_pending_migrations(raw)
    if pending is None:
        click.echo(
            f"❌ Unsupported credential schema version {runner.detect_version(raw)!r}. "
            "Run 'google-mcp setup' to re-authenticate."
        )
        sys.exit(1)
    if not pending:
        click.echo("No pending migrations.")
        return

    click.echo(f"Found {len(pending)} pending migration(s):")
    for m in pending:
        click.echo(f"  - {m.id}: {m.description}")
    click.echo("")

    if dry_run:
        click.echo("Dry-run mode - showing what would happen:")
        click.echo("")

    runner.set_progress_callback(click.echo)
    result = runner.migrate(raw, dry_run=dry_run)

    click.echo("")
    if not result.success:
        click.echo("❌ Migration failed. Run 'google-mcp setup' to re-authenticate.")
        sys.exit(1)

    if dry_run:
        click.echo(f"Would apply {len(result.applied)} migration(s).")
        return

    try:
        store.save(CredentialRecord.model_validate(result.data))
    except (GoogleMCPError, ValueError) as e:
        click.echo(f"❌ Could not save migrated credentials: {e}")
        sys.exit(1)
    click.echo(f"Applied {len(result.applied)} migration(s).")


if __name__ == "__main__":
    main()
