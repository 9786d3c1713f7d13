"""Local HTTP listener that receives the OAuth authorization redirect.

One ``CallbackListener`` serves exactly one authorization attempt:

    IDLE --start()--> LISTENING --callback / timeout / stop()--> SETTLED

Every way an attempt can end (callback success, provider error, bad state,
exchange failure, timeout, shutdown) goes through ``_settle``; the first
settlement wins and later ones are no-ops.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from http import HTTPStatus
from typing import Any
from urllib.parse import parse_qs, urlparse

from google_mcp.auth.pages import ErrorPage, PageRenderer, SuccessPage, render_result_page
from google_mcp.auth.pkce import PKCEChallenge
from google_mcp.config import OAuthConfig
from google_mcp.errors import (
    AuthenticationFlowError,
    AuthenticationTimeoutError,
    GoogleMCPError,
    PortUnavailableError,
)

logger = logging.getLogger(__name__)

# Idle browser pre-connections must not keep the listener alive
REQUEST_READ_TIMEOUT = 10.0
MAX_REQUEST_HEAD_BYTES = 16 * 1024

ExchangeCallback = Callable[[str], Awaitable[Any]]


class ListenerState(str, Enum):
    """Lifecycle of a callback listener."""

    IDLE = "idle"
    LISTENING = "listening"
    SETTLED = "settled"


class CallbackListener:
    """Receive the authorization code for a single PKCE attempt.

    Args:
        config: OAuth configuration (callback path, ports, timeout).
        pkce: The attempt's PKCE challenge; its ``state`` validates callbacks.
        exchange: Coroutine function called with the authorization code. Its
            return value becomes the result of ``wait()``.
        renderer: Turns a ``SuccessPage``/``ErrorPage`` into HTML.

    Example:
        ```python
        listener = CallbackListener(config, pkce, exchange=manager_exchange)
        port = await listener.start()
        webbrowser.open(build_url(listener.redirect_uri))
        record = await listener.wait()
        ```
    """

    def __init__(
        self,
        config: OAuthConfig,
        pkce: PKCEChallenge,
        exchange: ExchangeCallback,
        renderer: PageRenderer = render_result_page,
    ) -> None:
        self.config = config
        self.pkce = pkce
        self._exchange = exchange
        self._renderer = renderer
        self._state = ListenerState.IDLE
        self._server: asyncio.AbstractServer | None = None
        self._port: int | None = None
        self._result: asyncio.Future | None = None
        self._exchanging = False
        self._connections: set[asyncio.StreamWriter] = set()

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def port(self) -> int | None:
        """Bound port, or None before ``start()``."""
        return self._port

    @property
    def redirect_uri(self) -> str:
        """Redirect URI for the bound port.

        Raises:
            AuthenticationFlowError: If the listener has not bound a port yet.
        """
        if self._port is None:
            raise AuthenticationFlowError("Callback listener has not been started")
        return self.config.redirect_uri_for_port(self._port)

    def _candidate_ports(self) -> list[int]:
        """Ports to try, starting with the redirect URI's own port."""
        if self.config.callback_port is not None:
            return [self.config.callback_port]
        start, end = self.config.port_range
        preferred = self.config.default_port
        return [preferred] + [port for port in range(start, end + 1) if port != preferred]

    async def start(self) -> int:
        """Bind the listener and begin accepting callbacks.

        Returns:
            The bound port.

        Raises:
            PortUnavailableError: If the configured port (or every port in
                the fallback range) is in use.
            AuthenticationFlowError: If the listener was already started.
        """
        if self._state is not ListenerState.IDLE:
            raise AuthenticationFlowError("Callback listener has already been started")

        self._result = asyncio.get_running_loop().create_future()
        host = self.config.callback_host

        for port in self._candidate_ports():
            try:
                server = await asyncio.start_server(self._handle_connection, host=host, port=port)
            except OSError as e:
                logger.debug(f"Callback port {port} unavailable: {e}")
                continue

            if self._state is not ListenerState.IDLE:
                # stop() ran while we were binding
                server.close()
                await server.wait_closed()
                raise AuthenticationFlowError("Authentication was cancelled")

            self._server = server
            self._port = server.sockets[0].getsockname()[1]
            self._state = ListenerState.LISTENING
            logger.info(f"OAuth callback listener started on {self.redirect_uri}")
            return self._port

        self._state = ListenerState.SETTLED
        if self.config.callback_port is not None:
            raise PortUnavailableError(
                f"Requested OAuth callback port {self.config.callback_port} is not available. "
                "Free the port or choose another one with OAUTH_CALLBACK_PORT."
            )
        start, end = self.config.port_range
        raise PortUnavailableError(
            f"No available OAuth callback port in range {start}-{end}. "
            "Free one of these ports or set OAUTH_CALLBACK_PORT to a free port."
        )

    async def wait(self) -> Any:
        """Wait for the attempt to settle, then stop the listener.

        Returns:
            Whatever the exchange callback returned.

        Raises:
            AuthenticationTimeoutError: If no callback settled the attempt in time.
            AuthenticationFlowError: If the attempt failed.
        """
        if self._result is None:
            raise AuthenticationFlowError("Callback listener has not been started")

        try:
            done, _ = await asyncio.wait(
                {self._result}, timeout=self.config.callback_timeout_seconds
            )
            if not done:
                self._settle(
                    error=AuthenticationTimeoutError(
                        f"Authentication timed out after "
                        f"{self.config.callback_timeout_seconds:g} seconds. "
                        "Run `google-mcp setup` to try again."
                    )
                )
            return self._result.result()
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop accepting callbacks. Safe to call repeatedly."""
        if self._state is not ListenerState.SETTLED:
            self._settle(error=AuthenticationFlowError("Authentication was cancelled"))

        server, self._server = self._server, None
        if server is None:
            return

        server.close()
        for writer in list(self._connections):
            writer.close()
        await server.wait_closed()
        logger.debug(f"OAuth callback listener on port {self._port} stopped")

    def _settle(self, result: Any = None, error: BaseException | None = None) -> bool:
        """Record the attempt's outcome. Returns False if already settled."""
        if self._state is ListenerState.SETTLED:
            return False

        self._state = ListenerState.SETTLED
        if self._result is not None and not self._result.done():
            if error is not None:
                self._result.set_exception(error)
            else:
                self._result.set_result(result)
        return True

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self._connections.add(writer)
        try:
            head = await asyncio.wait_for(
                reader.readuntil(b"\r\n\r\n"), timeout=REQUEST_READ_TIMEOUT
            )
            request_line = head.split(b"\r\n", 1)[0].decode("latin-1")
            parts = request_line.split()
            if len(parts) < 2:
                await self._respond(writer, HTTPStatus.BAD_REQUEST, "Bad Request", "text/plain")
                return

            method, target = parts[0], parts[1]
            await self._handle_request(writer, method, target)
        except (asyncio.IncompleteReadError, asyncio.LimitOverrunError, asyncio.TimeoutError):
            logger.debug("Discarded incomplete callback request")
        except ConnectionError as e:
            logger.debug(f"Callback connection dropped: {e}")
        finally:
            self._connections.discard(writer)
            writer.close()

    async def _handle_request(self, writer: asyncio.StreamWriter, method: str, target: str) -> None:
        parsed = urlparse(target)

        if method != "GET" or parsed.path != self.config.callback_path:
            await self._respond(writer, HTTPStatus.NOT_FOUND, "Not Found", "text/plain")
            return

        if self._state is not ListenerState.LISTENING or self._exchanging:
            await self._respond_page(
                writer,
                HTTPStatus.BAD_REQUEST,
                ErrorPage(
                    title="Authentication Already Completed",
                    message="This authorization attempt has already completed. "
                    "You can close this window.",
                ),
            )
            return

        params = parse_qs(parsed.query)
        error = _first(params, "error")
        state = _first(params, "state")
        code = _first(params, "code")

        if error:
            description = _first(params, "error_description") or error
            await self._fail(
                writer,
                ErrorPage(title="Authentication Failed", message=f"Authorization failed: {description}"),
                AuthenticationFlowError(f"Authorization failed: {error}"),
            )
            return

        if not self.pkce.state_matches(state):
            logger.warning("Rejected OAuth callback with invalid state parameter")
            await self._fail(
                writer,
                ErrorPage(
                    title="Invalid State Parameter",
                    message="The authorization response could not be verified. Please try again.",
                ),
                AuthenticationFlowError("Invalid state parameter"),
            )
            return

        if not code:
            await self._fail(
                writer,
                ErrorPage(
                    title="No Authorization Code",
                    message="No authorization code was received from Google.",
                ),
                AuthenticationFlowError("No authorization code received"),
            )
            return

        self._exchanging = True
        try:
            result = await self._exchange(code)
        except Exception as e:
            flow_error = (
                e
                if isinstance(e, GoogleMCPError)
                else AuthenticationFlowError(f"Failed to exchange authorization code: {e}")
            )
            logger.error(f"Authorization code exchange failed: {e}")
            await self._fail(
                writer,
                ErrorPage(title="Authentication Failed", message=flow_error.message),
                flow_error,
            )
            return
        finally:
            self._exchanging = False

        try:
            await self._respond_page(
                writer,
                HTTPStatus.OK,
                SuccessPage(auto_close_delay_ms=self.config.auto_close_delay_ms),
            )
        finally:
            self._settle(result=result)

    async def _fail(
        self, writer: asyncio.StreamWriter, page: ErrorPage, error: GoogleMCPError
    ) -> None:
        try:
            await self._respond_page(writer, HTTPStatus.BAD_REQUEST, page)
        finally:
            self._settle(error=error)

    async def _respond_page(
        self,
        writer: asyncio.StreamWriter,
        status: HTTPStatus,
        page: ErrorPage | SuccessPage,
    ) -> None:
        await self._respond(writer, status, self._renderer(page), "text/html; charset=utf-8")

    @staticmethod
    async def _respond(
        writer: asyncio.StreamWriter, status: HTTPStatus, body: str, content_type: str
    ) -> None:
        payload = body.encode("utf-8")
        head = (
            f"HTTP/1.1 {status.value} {status.phrase}\r\n"
            f"Content-Type: {content_type}\r\n"
            f"Content-Length: {len(payload)}\r\n"
            "Cache-Control: no-store\r\n"
            "Connection: close\r\n"
            "\r\n"
        )
        writer.write(head.encode("latin-1") + payload)
        await writer.drain()


def _first(params: dict[str, list[str]], name: str) -> str | None:
    values = params.get(name)
    return values[0] if values else None
