"""Shared pytest fixtures for google-mcp-server tests.

This module provides reusable fixtures for OAuth configuration, credential
records, credential storage and the OAuth manager.
"""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from google_mcp.auth.models import CredentialRecord, now_millis
from google_mcp.auth.scopes import BASE_SCOPES
from google_mcp.config import OAuthConfig

HOUR_MS = 60 * 60 * 1000

# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def temp_token_path(tmp_path: Path) -> Path:
    """Get the path for a temporary credential file (directory not created)."""
    return tmp_path / ".tokens" / "calendar-tokens.json"


@pytest.fixture
def oauth_config(temp_token_path: Path) -> OAuthConfig:
    """OAuth configuration bound to loopback with an OS-assigned callback port."""
    return OAuthConfig(
        client_id="test-client-id.apps.googleusercontent.com",
        client_secret="test-client-secret",  # pragma: allowlist secret
        redirect_uri="http://127.0.0.1:8080/auth/callback",
        callback_port=0,
        callback_timeout_ms=5_000,
        token_path=temp_token_path,
    )


# =============================================================================
# Credential Record Fixtures
# =============================================================================


def make_record(
    expires_in_ms: int = HOUR_MS,
    scopes: tuple[str, ...] | list[str] = BASE_SCOPES,
    **overrides,
) -> CredentialRecord:
    """Build a credential record expiring ``expires_in_ms`` from now."""
    values = {
        "access_token": "test_access_token_abc123",
        "refresh_token": "test_refresh_token_xyz789",
        "expiry_epoch_millis": now_millis() + expires_in_ms,
        "scope": " ".join(scopes),
        "created_at_epoch_millis": now_millis() - 24 * HOUR_MS,
    }
    values.update(overrides)
    return CredentialRecord(**values)


@pytest.fixture
def record_factory():
    """Factory building credential records with custom expiry, scopes or fields."""
    return make_record


@pytest.fixture
def valid_record() -> CredentialRecord:
    """A record covering the base scopes, valid for an hour."""
    return make_record()


@pytest.fixture
def expiring_record() -> CredentialRecord:
    """A record inside the five-minute refresh buffer."""
    return make_record(expires_in_ms=2 * 60 * 1000, access_token="stale_access_token")


@pytest.fixture
def expired_record() -> CredentialRecord:
    """A record past its nominal expiry."""
    return make_record(expires_in_ms=-HOUR_MS, access_token="expired_access_token")


# =============================================================================
# Storage and Manager Fixtures
# =============================================================================


@pytest.fixture
def credential_store(temp_token_path: Path):
    """Create a CredentialStore with temporary storage."""
    from google_mcp.auth.token_storage import CredentialStore

    return CredentialStore(token_path=temp_token_path)


@pytest.fixture
def oauth_manager(oauth_config: OAuthConfig, credential_store):
    """Create an OAuthManager with temporary storage."""
    from google_mcp.auth.oauth_manager import OAuthManager

    return OAuthManager(config=oauth_config, storage=credential_store)


# =============================================================================
# Mock Google Credentials
# =============================================================================


@pytest.fixture
def mock_google_credentials() -> MagicMock:
    """Create a mock google-auth Credentials object after a successful refresh."""
    from datetime import datetime, timedelta, timezone

    mock_creds = MagicMock()
    mock_creds.token = "refreshed_access_token"
    mock_creds.refresh_token = None
    # google-auth reports expiry as naive UTC
    mock_creds.expiry = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)
    return mock_creds


# =============================================================================
# CLI Test Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()
