"""OAuth 2.0 + PKCE token lifecycle manager for Google Workspace.

This module owns the one credential a google-mcp process uses: it runs the
interactive authorization flow, keeps the stored record fresh, and decides
when a credential is no longer good enough (expired and unrefreshable, or
missing scopes a tool needs).

Service wrappers talk to the manager through four calls:

    * ``get_access_token()``: a bearer token valid for at least five minutes.
    * ``ensure_scopes(scopes)``: make sure the grant covers ``scopes``.
    * ``handle_insufficient_scope_error(error)``: react to a provider 403.
    * ``is_authenticated()``: cheap yes/no for startup checks.

None of them ever opens a browser; only ``authenticate()`` does.
"""

import asyncio
import logging
import webbrowser
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NoReturn

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from google_mcp.auth.callback_server import CallbackListener
from google_mcp.auth.models import AuthStatus, CredentialRecord, now_millis
from google_mcp.auth.pages import PageRenderer, render_result_page
from google_mcp.auth.pkce import PKCE_METHOD, PKCEChallenge, generate_pkce
from google_mcp.auth.scopes import RequiredScopes, diff_scopes, parse_scopes, short_scope_name
from google_mcp.auth.token_storage import CredentialStore
from google_mcp.config import OAuthConfig
from google_mcp.errors import (
    AuthenticationFlowError,
    AuthenticationRequiredError,
    ErrorKind,
    GoogleMCPError,
    InsufficientScopeError,
    StorageError,
    classify_provider_error,
)

logger = logging.getLogger(__name__)

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"

# Used when Google omits expires_in
DEFAULT_TOKEN_LIFETIME_MS = 60 * 60 * 1000

SETUP_HINT = "Run `google-mcp setup` to authenticate."


def _expiry_to_millis(expiry: datetime | None) -> int:
    """Convert a google-auth expiry (naive UTC) to epoch millis."""
    if expiry is None:
        return now_millis() + DEFAULT_TOKEN_LIFETIME_MS
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return int(expiry.timestamp() * 1000)


def _token_expiry_millis(token: dict[str, Any]) -> int:
    """Expiry of a freshly exchanged oauthlib token dict."""
    if token.get("expires_at"):
        return int(float(token["expires_at"]) * 1000)
    if token.get("expires_in"):
        return now_millis() + int(float(token["expires_in"]) * 1000)
    return now_millis() + DEFAULT_TOKEN_LIFETIME_MS


def _fetch_token(flow: Flow, code: str) -> dict[str, Any]:
    """Exchange the authorization code, accepting a changed scope grant.

    oauthlib raises a ``Warning`` carrying the parsed token when Google
    grants a different scope set than requested.
    """
    try:
        return flow.fetch_token(code=code)
    except Warning as w:
        token = getattr(w, "token", None)
        if token is None:
            raise
        logger.info(f"Google granted a different scope set than requested: {w}")
        return dict(token)


class OAuthManager:
    """Token lifecycle manager for Google Workspace.

    Create one per process and pass it to whatever needs tokens; ``close()``
    tears it down.

    Attributes:
        config: OAuth client and callback settings.
        storage: Credential store for persisting the record.
        required_scopes: Scopes the stored grant must cover. Only grows.

    Example:
        ```python
        manager = OAuthManager()

        if not await manager.is_authenticated():
            await manager.authenticate()

        await manager.ensure_scopes(SERVICE_SCOPES["sheets"])
        token = await manager.get_access_token()
        ```
    """

    def __init__(
        self,
        config: OAuthConfig | None = None,
        storage: CredentialStore | None = None,
        renderer: PageRenderer = render_result_page,
        required_scopes: RequiredScopes | None = None,
    ) -> None:
        """Initialize OAuth manager.

        Args:
            config: OAuth configuration. Read from the environment if not provided.
            storage: Credential store. Defaults to the configured token path.
            renderer: Renders the browser result pages.
            required_scopes: Initial required scope set. Defaults to the base scopes.

        Raises:
            ConfigurationError: If no config is given and the environment
                lacks the client ID or secret.
        """
        self.config = config or OAuthConfig.from_env()
        self.storage = storage or CredentialStore(self.config.token_path)
        self.renderer = renderer
        self.required_scopes = required_scopes or RequiredScopes()
        self._lock = asyncio.Lock()
        self._record: CredentialRecord | None = None
        self._authenticating = False
        self._listener: CallbackListener | None = None
        self._on_progress: Callable[[str], None] | None = None

    @property
    def token_path(self) -> Path:
        """Get the credential file path."""
        return self.storage.token_path

    @property
    def authentication_in_progress(self) -> bool:
        return self._authenticating

    def set_progress_callback(self, callback: Callable[[str], None] | None) -> None:
        """Set a callback for user-facing progress messages.

        Args:
            callback: Function to call with progress messages.
        """
        self._on_progress = callback

    def _report(self, message: str) -> None:
        logger.info(message)
        if self._on_progress:
            self._on_progress(message)

    # ------------------------------------------------------------------
    # Record cache
    # ------------------------------------------------------------------

    def _cached_record(self) -> CredentialRecord | None:
        """Return the credential record, reading the store only on a cache miss."""
        if self._record is None:
            self._record = self.storage.load()
        return self._record

    def _store_record(self, record: CredentialRecord) -> None:
        self.storage.save(record)
        self._record = record

    def _clear_unlocked(self) -> bool:
        self._record = None
        return self.storage.clear()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def is_authenticated(self) -> bool:
        """Check for a usable credential covering every required scope.

        A record lacking required scopes is cleared. A record inside the
        refresh buffer is refreshed. Never raises.

        Returns:
            True if a valid (possibly just refreshed) credential is stored.
        """
        try:
            record = self._cached_record()
            if record is None:
                return False

            diff = diff_scopes(record.scope, self.required_scopes)
            if not diff.is_sufficient:
                logger.info(
                    "Stored credentials lack required scopes "
                    f"({', '.join(short_scope_name(s) for s in diff.missing)}); clearing"
                )
                await self.clear_tokens()
                return False

            if not record.needs_refresh():
                return True

            return await self._refresh()
        except GoogleMCPError as e:
            logger.warning(f"Authentication check failed: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error while checking authentication: {e}")
            return False

    def get_auth_status(self) -> AuthStatus:
        """Describe the stored credential without changing anything.

        An unreadable credential file is reported as unauthenticated, and
        older record layouts are described without being rewritten.

        Returns:
            AuthStatus snapshot. ``is_authenticated`` is True only when a
            record exists, covers the required scopes and is not past its
            nominal expiry; ``needs_refresh`` reports the refresh buffer.
        """
        record = self._record
        if record is None:
            try:
                record = self.storage.load(persist_migration=False)
            except GoogleMCPError as e:
                logger.warning(f"Could not read stored credentials: {e}")
                return AuthStatus(
                    is_authenticated=False,
                    has_tokens=self.storage.exists,
                    token_path=self.token_path,
                )
        if record is None:
            return AuthStatus(is_authenticated=False, has_tokens=False, token_path=self.token_path)

        now = now_millis()
        diff = diff_scopes(record.scope, self.required_scopes)
        return AuthStatus(
            is_authenticated=diff.is_sufficient and not record.is_expired(now),
            has_tokens=True,
            token_path=self.token_path,
            token_expiry=record.expiry_epoch_millis,
            scopes=record.scopes,
            missing_scopes=diff.missing,
            time_until_expiry=record.time_until_expiry(now),
            needs_refresh=record.needs_refresh(now),
            created_at=record.created_at_epoch_millis,
            schema_version=record.schema_version,
        )

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def get_access_token(self) -> str:
        """Return an access token valid for at least the refresh buffer.

        Returns:
            Bearer access token.

        Raises:
            AuthenticationRequiredError: If there is no credential or it
                could not be refreshed.
        """
        record = self._cached_record()
        if record is None:
            raise AuthenticationRequiredError(f"Not authenticated with Google. {SETUP_HINT}")

        if not record.needs_refresh():
            return record.access_token

        if await self._refresh() and self._record is not None:
            return self._record.access_token

        raise AuthenticationRequiredError(
            "Google access token expired and could not be refreshed. "
            "Run `google-mcp setup` to re-authenticate."
        )

    def get_credentials(self) -> Credentials | None:
        """Get Google credentials for use with Google client libraries.

        Returns:
            Google OAuth2 credentials, or None if not authenticated.
        """
        record = self._cached_record()
        if record is None:
            return None
        return self._build_credentials(record)

    def _build_credentials(self, record: CredentialRecord) -> Credentials:
        return Credentials(  # nosec B106 - token_uri is public Google OAuth endpoint
            token=record.access_token,
            refresh_token=record.refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            scopes=record.scopes,
        )

    async def _refresh(self) -> bool:
        """Refresh the stored access token once.

        Returns:
            True if the record is fresh afterwards, False otherwise.
        """
        async with self._lock:
            # Another caller may have refreshed while we waited for the lock
            record = self._cached_record()
            if record is None:
                return False
            if not record.needs_refresh():
                return True
            return await self._refresh_unlocked(record)

    async def _refresh_unlocked(self, record: CredentialRecord) -> bool:
        if not record.refresh_token:
            return False

        logger.info("Refreshing Google access token")
        loop = asyncio.get_running_loop()
        try:
            credentials = await loop.run_in_executor(None, self._refresh_credentials, record)
        except (RefreshError, TransportError) as e:
            logger.warning(f"Token refresh failed: {e}")
            return False

        if not credentials.token:
            logger.warning("Token refresh returned no access token")
            return False

        refreshed = record.model_copy(
            update={
                "access_token": credentials.token,
                "refresh_token": credentials.refresh_token or record.refresh_token,
                "expiry_epoch_millis": _expiry_to_millis(credentials.expiry),
            }
        )
        try:
            self._store_record(refreshed)
        except StorageError as e:
            # The new token is still usable for this process
            logger.error(f"Refreshed token could not be persisted: {e}")
            self._record = refreshed
        return True

    def _refresh_credentials(self, record: CredentialRecord) -> Credentials:
        """Run the blocking google-auth refresh."""
        credentials = self._build_credentials(record)
        credentials.refresh(Request())
        return credentials

    # ------------------------------------------------------------------
    # Scopes
    # ------------------------------------------------------------------

    async def ensure_scopes(self, scopes: str | Iterable[str]) -> None:
        """Require ``scopes`` and verify the stored grant covers them.

        Args:
            scopes: Scopes a caller is about to use.

        Raises:
            AuthenticationRequiredError: If no credential is stored.
            InsufficientScopeError: If the grant lacks required scopes. The
                stored credential is cleared first.
        """
        added = self.required_scopes.add(scopes)
        if added:
            logger.debug(f"Added required scopes: {', '.join(map(short_scope_name, added))}")

        record = self._cached_record()
        if record is None:
            raise AuthenticationRequiredError(f"Not authenticated with Google. {SETUP_HINT}")

        diff = diff_scopes(record.scope, self.required_scopes)
        if diff.is_sufficient:
            return

        await self.clear_tokens()
        missing = ", ".join(short_scope_name(s) for s in diff.missing)
        raise InsufficientScopeError(
            f"Stored Google credentials are missing required permissions ({missing}). "
            "Run `google-mcp setup` to grant them.",
            missing_scopes=diff.missing,
        )

    async def handle_insufficient_scope_error(self, error: BaseException) -> NoReturn:
        """React to a failed provider call.

        Args:
            error: The exception raised by the provider call.

        Raises:
            InsufficientScopeError: If the failure was an insufficient-scope
                rejection. The stored credential is cleared first.
            BaseException: ``error`` itself, unchanged, for any other failure.
        """
        if classify_provider_error(error) is not ErrorKind.SCOPE_INSUFFICIENT:
            raise error

        await self.clear_tokens()
        missing = getattr(error, "missing_scopes", None)
        raise InsufficientScopeError(
            "Google rejected the request because the granted permissions are insufficient. "
            "Run `google-mcp setup` to grant them.",
            missing_scopes=missing,
        ) from error

    # ------------------------------------------------------------------
    # Clearing
    # ------------------------------------------------------------------

    async def clear_tokens(self) -> bool:
        """Delete the stored credential. Idempotent.

        Returns:
            True if a credential was deleted, False if none existed.
        """
        async with self._lock:
            return self._clear_unlocked()

    async def force_reauthentication(self) -> None:
        """Discard the stored credential so the next setup starts fresh."""
        await self.clear_tokens()
        logger.info(f"Credentials cleared; re-authentication required. {SETUP_HINT}")

    # ------------------------------------------------------------------
    # Interactive flow
    # ------------------------------------------------------------------

    def _create_flow(self, scopes: list[str], redirect_uri: str, pkce: PKCEChallenge) -> Flow:
        client_config = {
            "web": {
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [redirect_uri],
            }
        }
        return Flow.from_client_config(
            client_config,
            scopes=scopes,
            redirect_uri=redirect_uri,
            code_verifier=pkce.code_verifier,
            autogenerate_code_verifier=False,
        )

    @staticmethod
    def _authorization_url(flow: Flow, pkce: PKCEChallenge) -> str:
        auth_url, _ = flow.authorization_url(
            access_type="offline",
            prompt="consent",
            state=pkce.state,
            code_challenge=pkce.code_challenge,
            code_challenge_method=PKCE_METHOD,
        )
        return auth_url

    async def _exchange_code(self, flow: Flow, code: str, scopes: list[str]) -> CredentialRecord:
        """Exchange the authorization code and persist the resulting record.

        Raises:
            AuthenticationFlowError: If Google's response lacks either token.
        """
        loop = asyncio.get_running_loop()
        token = await loop.run_in_executor(None, _fetch_token, flow, code)

        if not token.get("access_token") or not token.get("refresh_token"):
            raise AuthenticationFlowError(
                "Google did not return both an access token and a refresh token. "
                "Remove this app at https://myaccount.google.com/permissions and "
                "run `google-mcp setup` again."
            )

        granted = parse_scopes(token.get("scope")) or scopes
        record = CredentialRecord(
            access_token=token["access_token"],
            refresh_token=token["refresh_token"],
            expiry_epoch_millis=_token_expiry_millis(token),
            scope=" ".join(granted),
            token_type=token.get("token_type") or "Bearer",
        )

        async with self._lock:
            self._store_record(record)
        logger.info(f"Stored Google credentials at {self.token_path}")
        return record

    async def authenticate(self, open_browser: bool = True) -> CredentialRecord:
        """Run the interactive PKCE authorization flow.

        Requests every currently required scope. Only one attempt may run at
        a time.

        Args:
            open_browser: Open the authorization URL in the default browser.
                The URL is always reported through the logger and progress
                callback.

        Returns:
            The newly stored credential record.

        Raises:
            AuthenticationFlowError: If an attempt is already running, the user
                denied access, or the code exchange failed.
            AuthenticationTimeoutError: If the user did not finish in time.
            PortUnavailableError: If no callback port could be bound.
        """
        if self._authenticating:
            raise AuthenticationFlowError("Authentication already in progress")
        self._authenticating = True

        listener: CallbackListener | None = None
        try:
            pkce = generate_pkce()
            scopes = self.required_scopes.as_list()
            flow: Flow | None = None

            async def exchange(code: str) -> CredentialRecord:
                if flow is None:
                    raise AuthenticationFlowError("Authorization flow is not ready")
                return await self._exchange_code(flow, code, scopes)

            listener = CallbackListener(self.config, pkce, exchange, self.renderer)
            self._listener = listener
            await listener.start()

            flow = self._create_flow(scopes, listener.redirect_uri, pkce)
            auth_url = self._authorization_url(flow, pkce)

            self._report("Opening browser for Google authorization...")
            self._report(f"If the browser doesn't open, visit: {auth_url}")
            if open_browser:
                try:
                    webbrowser.open(auth_url)
                except webbrowser.Error as e:
                    logger.warning(f"Could not open browser: {e}")

            record = await listener.wait()
            self._report("Authentication successful")
            return record
        finally:
            if listener is not None:
                await listener.stop()
            self._listener = None
            self._authenticating = False

    async def close(self) -> None:
        """Stop any running authorization attempt and drop cached state."""
        listener = self._listener
        if listener is not None:
            await listener.stop()
        self._record = None
