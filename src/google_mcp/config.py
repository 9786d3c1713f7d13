"""OAuth client configuration for Google MCP.

Configuration comes from environment variables (a ``.env`` file is loaded by
the CLI before this module reads them).

Environment Variables:
    GOOGLE_CLIENT_ID: Google OAuth client ID (required)
    GOOGLE_CLIENT_SECRET: Google OAuth client secret (required)
    GOOGLE_REDIRECT_URI: Redirect URI (default: http://localhost:8080/auth/callback)
    OAUTH_CALLBACK_PORT: Bind exactly this callback port instead of probing 8080-8090
    OAUTH_CALLBACK_TIMEOUT: Authorization attempt timeout in milliseconds (default: 300000)
    OAUTH_AUTO_CLOSE_DELAY: Success page auto-close delay in milliseconds (default: 3000)
    GOOGLE_MCP_TOKEN_PATH: Credential file location (default: ./.tokens/calendar-tokens.json)
"""

import os
from collections.abc import Mapping
from pathlib import Path
from urllib.parse import urlparse, urlunparse

from pydantic import BaseModel, Field, model_validator

from google_mcp.errors import ConfigurationError

DEFAULT_REDIRECT_URI = "http://localhost:8080/auth/callback"
DEFAULT_CALLBACK_PATH = "/auth/callback"
DEFAULT_PORT_RANGE = (8080, 8090)
DEFAULT_CALLBACK_TIMEOUT_MS = 300_000  # 5 minutes
DEFAULT_AUTO_CLOSE_DELAY_MS = 3_000


def default_token_path() -> Path:
    """Credential file location relative to the current working directory."""
    return Path.cwd() / ".tokens" / "calendar-tokens.json"


class OAuthConfig(BaseModel):
    """Validated OAuth client and callback settings.

    Attributes:
        client_id: Google OAuth client ID.
        client_secret: Google OAuth client secret.
        redirect_uri: Default redirect URI; its port is replaced by the bound port.
        callback_port: Operator-specified callback port, or None to try the range.
        port_range: Inclusive port range tried when no port is specified.
        callback_timeout_ms: Bound on one authorization attempt.
        auto_close_delay_ms: Delay before the success page closes itself.
        token_path: Credential file location.
    """

    client_id: str = Field(..., min_length=1)
    client_secret: str = Field(..., min_length=1)
    redirect_uri: str = DEFAULT_REDIRECT_URI
    callback_port: int | None = Field(default=None, ge=0, le=65535)
    port_range: tuple[int, int] = DEFAULT_PORT_RANGE
    callback_timeout_ms: int = Field(default=DEFAULT_CALLBACK_TIMEOUT_MS, gt=0)
    auto_close_delay_ms: int = Field(default=DEFAULT_AUTO_CLOSE_DELAY_MS, ge=0)
    token_path: Path = Field(default_factory=default_token_path)

    @model_validator(mode="after")
    def _check_port_range(self) -> "OAuthConfig":
        start, end = self.port_range
        if start > end:
            raise ValueError(f"Invalid callback port range {start}-{end}")
        return self

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "OAuthConfig":
        """Build configuration from environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ`` (used by tests).

        Returns:
            Validated configuration.

        Raises:
            ConfigurationError: If client credentials are missing or a numeric
                setting is not an integer.
        """
        env = os.environ if environ is None else environ

        client_id = env.get("GOOGLE_CLIENT_ID", "").strip()
        client_secret = env.get("GOOGLE_CLIENT_SECRET", "").strip()
        if not client_id or not client_secret:
            raise ConfigurationError(
                "Missing required OAuth credentials. Please set GOOGLE_CLIENT_ID and "
                "GOOGLE_CLIENT_SECRET environment variables."
            )

        values: dict = {
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": env.get("GOOGLE_REDIRECT_URI") or DEFAULT_REDIRECT_URI,
        }
        if env.get("OAUTH_CALLBACK_PORT"):
            values["callback_port"] = _parse_int(env, "OAUTH_CALLBACK_PORT")
        if env.get("OAUTH_CALLBACK_TIMEOUT"):
            values["callback_timeout_ms"] = _parse_int(env, "OAUTH_CALLBACK_TIMEOUT")
        if env.get("OAUTH_AUTO_CLOSE_DELAY"):
            values["auto_close_delay_ms"] = _parse_int(env, "OAUTH_AUTO_CLOSE_DELAY")
        if env.get("GOOGLE_MCP_TOKEN_PATH"):
            values["token_path"] = Path(env["GOOGLE_MCP_TOKEN_PATH"]).expanduser()

        try:
            return cls(**values)
        except ValueError as e:
            raise ConfigurationError(f"Invalid OAuth configuration: {e}") from e

    @property
    def callback_host(self) -> str:
        """Host the callback listener binds to (taken from the redirect URI)."""
        return urlparse(self.redirect_uri).hostname or "localhost"

    @property
    def callback_path(self) -> str:
        """Path of the callback route (taken from the redirect URI)."""
        return urlparse(self.redirect_uri).path or DEFAULT_CALLBACK_PATH

    @property
    def default_port(self) -> int:
        """Port named by the configured redirect URI."""
        return urlparse(self.redirect_uri).port or DEFAULT_PORT_RANGE[0]

    @property
    def callback_timeout_seconds(self) -> float:
        return self.callback_timeout_ms / 1000

    def redirect_uri_for_port(self, port: int) -> str:
        """Rebuild the redirect URI for the port the listener actually bound."""
        parsed = urlparse(self.redirect_uri)
        netloc = f"{self.callback_host}:{port}"
        return urlunparse(parsed._replace(netloc=netloc, path=self.callback_path))


def _parse_int(env: Mapping[str, str], name: str) -> int:
    raw = env[name]
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
