"""CLI tests for the google-mcp commands."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from google_mcp.__version__ import __version__
from google_mcp.auth.models import CURRENT_SCHEMA_VERSION
from google_mcp.auth.token_storage import CredentialStore
from google_mcp.cli.main import main
from google_mcp.errors import AuthenticationTimeoutError

ENV_VARS = (
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "GOOGLE_REDIRECT_URI",
    "OAUTH_CALLBACK_PORT",
    "OAUTH_CALLBACK_TIMEOUT",
    "OAUTH_AUTO_CLOSE_DELAY",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, temp_token_path: Path) -> Path:
    """Point the CLI at a temporary credential file and ignore any .env file."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GOOGLE_MCP_TOKEN_PATH", str(temp_token_path))
    monkeypatch.setattr("google_mcp.cli.main.load_dotenv", lambda: False)
    return temp_token_path


@pytest.fixture
def client_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "env-client-id")
    monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "env-client-secret")


@pytest.fixture
def mock_manager() -> MagicMock:
    """An OAuthManager double that is not yet authenticated."""
    manager = MagicMock()
    manager.is_authenticated = AsyncMock(return_value=False)
    manager.authenticate = AsyncMock()
    manager.token_path = "/tmp/.tokens/calendar-tokens.json"
    return manager


@pytest.mark.unit
def test_version_option(cli_runner: CliRunner) -> None:
    """Verify --version reports the package version."""
    result = cli_runner.invoke(main, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


@pytest.mark.unit
class TestSetupCommand:
    """Tests for the setup CLI command."""

    def test_should_show_error_without_credentials(self, cli_runner: CliRunner) -> None:
        """Verify error and instructions shown when client ID/secret not provided."""
        result = cli_runner.invoke(main, ["setup"])

        assert result.exit_code == 1
        assert "Missing required OAuth credentials" in result.output
        assert "export GOOGLE_CLIENT_ID" in result.output

    def test_should_run_authentication_with_credentials(
        self, cli_runner: CliRunner, mock_manager: MagicMock
    ) -> None:
        """Verify options build the config and the flow runs."""
        with patch("google_mcp.auth.OAuthManager", return_value=mock_manager) as manager_class:
            result = cli_runner.invoke(
                main,
                [
                    "setup",
                    "--client-id=test_id",
                    "--client-secret=test_secret",
                    "--port=9000",
                    "--no-browser",
                ],
            )

        assert result.exit_code == 0, result.output
        config = manager_class.call_args.kwargs["config"]
        assert config.client_id == "test_id"
        assert config.client_secret == "test_secret"
        assert config.callback_port == 9000
        mock_manager.authenticate.assert_awaited_once_with(open_browser=False)
        assert "Starting OAuth authentication flow" in result.output
        assert "Token stored at" in result.output

    def test_should_read_credentials_from_environment(
        self, cli_runner: CliRunner, client_env: None, mock_manager: MagicMock
    ) -> None:
        with patch("google_mcp.auth.OAuthManager", return_value=mock_manager) as manager_class:
            result = cli_runner.invoke(main, ["setup"])

        assert result.exit_code == 0, result.output
        assert manager_class.call_args.kwargs["config"].client_id == "env-client-id"
        mock_manager.authenticate.assert_awaited_once_with(open_browser=True)

    def test_should_ask_before_reauthenticating(
        self, cli_runner: CliRunner, client_env: None, mock_manager: MagicMock
    ) -> None:
        """Verify an existing credential is kept unless the user confirms."""
        mock_manager.is_authenticated.return_value = True

        with patch("google_mcp.auth.OAuthManager", return_value=mock_manager):
            result = cli_runner.invoke(main, ["setup"], input="n\n")

        assert result.exit_code == 0
        assert "Already authenticated" in result.output
        mock_manager.authenticate.assert_not_awaited()

    def test_should_skip_check_when_forced(
        self, cli_runner: CliRunner, client_env: None, mock_manager: MagicMock
    ) -> None:
        mock_manager.is_authenticated.return_value = True

        with patch("google_mcp.auth.OAuthManager", return_value=mock_manager):
            result = cli_runner.invoke(main, ["setup", "--force"])

        assert result.exit_code == 0
        mock_manager.is_authenticated.assert_not_awaited()
        mock_manager.authenticate.assert_awaited_once()

    def test_should_report_flow_failure(
        self, cli_runner: CliRunner, client_env: None, mock_manager: MagicMock
    ) -> None:
        """Verify flow errors are shown and exit non-zero."""
        mock_manager.authenticate.side_effect = AuthenticationTimeoutError(
            "Authentication timed out after 300 seconds."
        )

        with patch("google_mcp.auth.OAuthManager", return_value=mock_manager):
            result = cli_runner.invoke(main, ["setup"])

        assert result.exit_code == 1
        assert "Authentication failed: Authentication timed out" in result.output


@pytest.mark.unit
class TestStatusCommand:
    """Tests for the status CLI command."""

    def test_should_report_not_authenticated(self, cli_runner: CliRunner, client_env: None) -> None:
        result = cli_runner.invoke(main, ["status"])

        assert result.exit_code == 1
        assert "Not authenticated" in result.output

    def test_should_report_ready(
        self,
        cli_runner: CliRunner,
        client_env: None,
        isolated_env: Path,
        record_factory,
    ) -> None:
        """Verify a valid credential is reported as ready."""
        CredentialStore(isolated_env).save(record_factory())

        result = cli_runner.invoke(main, ["status"])

        assert result.exit_code == 0, result.output
        assert "✓ Authenticated" in result.output
        assert "Ready to use" in result.output
        assert f"Schema version: {CURRENT_SCHEMA_VERSION}" in result.output

    def test_should_warn_about_expiring_token(
        self,
        cli_runner: CliRunner,
        client_env: None,
        isolated_env: Path,
        record_factory,
    ) -> None:
        CredentialStore(isolated_env).save(record_factory(expires_in_ms=60_000))

        result = cli_runner.invoke(main, ["status"])

        assert result.exit_code == 0
        assert "expiring soon" in result.output

    def test_should_list_missing_scopes(
        self,
        cli_runner: CliRunner,
        client_env: None,
        isolated_env: Path,
        record_factory,
    ) -> None:
        """Verify missing scopes are listed without clearing the credential."""
        CredentialStore(isolated_env).save(record_factory(scopes=["openid"]))

        result = cli_runner.invoke(main, ["status"])

        assert result.exit_code == 1
        assert "Missing scopes" in result.output
        assert "- gmail.send" in result.output
        assert isolated_env.exists()


@pytest.mark.unit
class TestLogoutCommand:
    """Tests for the logout CLI command."""

    def test_should_remove_credentials(
        self, cli_runner: CliRunner, client_env: None, isolated_env: Path, record_factory
    ) -> None:
        CredentialStore(isolated_env).save(record_factory())

        result = cli_runner.invoke(main, ["logout"])

        assert result.exit_code == 0
        assert "Removed credentials" in result.output
        assert not isolated_env.exists()

    def test_should_work_without_client_credentials(
        self, cli_runner: CliRunner, isolated_env: Path, record_factory
    ) -> None:
        """Verify logout needs no OAuth client configuration."""
        CredentialStore(isolated_env).save(record_factory())

        result = cli_runner.invoke(main, ["logout"])

        assert result.exit_code == 0
        assert not isolated_env.exists()

    def test_should_report_nothing_to_remove(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(main, ["logout"])

        assert result.exit_code == 0
        assert "No stored credentials found" in result.output


@pytest.mark.unit
class TestMigrateCommand:
    """Tests for the migrate CLI command."""

    LEGACY_RECORD = {
        "accessToken": "legacy_access",
        "refreshToken": "legacy_refresh",
        "expiryDate": 1_700_000_000_000,
        "scope": "openid",
        "createdAt": 1_600_000_000_000,
        "version": "1.0.0",
    }

    def _write(self, path: Path, data: dict) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data))

    def test_should_report_missing_file(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(main, ["migrate"])

        assert result.exit_code == 0
        assert "No credential file found" in result.output

    def test_should_apply_pending_migrations(
        self, cli_runner: CliRunner, isolated_env: Path
    ) -> None:
        """Verify a legacy file is rewritten in the current layout."""
        self._write(isolated_env, self.LEGACY_RECORD)

        result = cli_runner.invoke(main, ["migrate"])

        assert result.exit_code == 0, result.output
        assert "Found 1 pending migration(s)" in result.output
        assert "Applied 1 migration(s)" in result.output
        data = json.loads(isolated_env.read_text())
        assert data["schemaVersion"] == CURRENT_SCHEMA_VERSION
        assert data["expiryEpochMillis"] == 1_700_000_000_000

    def test_should_not_write_in_dry_run(self, cli_runner: CliRunner, isolated_env: Path) -> None:
        """Verify --dry-run leaves the file untouched."""
        self._write(isolated_env, self.LEGACY_RECORD)

        result = cli_runner.invoke(main, ["migrate", "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "Would apply 1 migration(s)" in result.output
        assert json.loads(isolated_env.read_text()) == self.LEGACY_RECORD

    def test_should_report_current_file(
        self, cli_runner: CliRunner, isolated_env: Path, record_factory
    ) -> None:
        CredentialStore(isolated_env).save(record_factory())

        result = cli_runner.invoke(main, ["migrate"])

        assert result.exit_code == 0
        assert "No pending migrations" in result.output

    def test_should_reject_unknown_version(
        self, cli_runner: CliRunner, isolated_env: Path
    ) -> None:
        self._write(isolated_env, {**self.LEGACY_RECORD, "version": "9.9.9"})

        result = cli_runner.invoke(main, ["migrate"])

        assert result.exit_code == 1
        assert "Unsupported credential schema version" in result.output


@pytest.mark.unit
class TestMcpCommand:
    """Tests for the mcp CLI command."""

    def test_should_refuse_to_start_unauthenticated(
        self, cli_runner: CliRunner, client_env: None, mock_manager: MagicMock
    ) -> None:
        """Verify the server does not start without credentials."""
        with (
            patch("google_mcp.auth.OAuthManager", return_value=mock_manager),
            patch("google_mcp.server.GoogleWorkspaceServer") as server_class,
        ):
            result = cli_runner.invoke(main, ["mcp"])

        assert result.exit_code == 1
        assert "Not authenticated" in result.output
        server_class.assert_not_called()
        mock_manager.authenticate.assert_not_awaited()

    def test_should_authenticate_then_serve(
        self, cli_runner: CliRunner, client_env: None, mock_manager: MagicMock
    ) -> None:
        """Verify --authenticate runs the flow before serving."""
        with (
            patch("google_mcp.auth.OAuthManager", return_value=mock_manager),
            patch("google_mcp.server.GoogleWorkspaceServer") as server_class,
        ):
            server_class.return_value.run = AsyncMock()
            result = cli_runner.invoke(main, ["mcp", "--authenticate"])

        assert result.exit_code == 0, result.output
        mock_manager.authenticate.assert_awaited_once()
        server_class.assert_called_once_with(manager=mock_manager)
        server_class.return_value.run.assert_awaited_once()

    def test_should_serve_when_authenticated(
        self, cli_runner: CliRunner, client_env: None, mock_manager: MagicMock
    ) -> None:
        mock_manager.is_authenticated.return_value = True

        with (
            patch("google_mcp.auth.OAuthManager", return_value=mock_manager),
            patch("google_mcp.server.GoogleWorkspaceServer") as server_class,
        ):
            server_class.return_value.run = AsyncMock()
            result = cli_runner.invoke(main, ["mcp"])

        assert result.exit_code == 0, result.output
        mock_manager.authenticate.assert_not_awaited()
        server_class.return_value.run.assert_awaited_once()

    def test_should_exit_without_client_credentials(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(main, ["mcp"])

        assert result.exit_code == 1
        assert "Missing required OAuth credentials" in result.output
