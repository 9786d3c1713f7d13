"""Data models for OAuth credentials and authentication status.

The credential file holds exactly one ``CredentialRecord``. Field names on
disk are camelCase (``accessToken``, ``expiryEpochMillis``, ...); Python code
uses the snake_case attribute names.
"""

import time
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from google_mcp.auth.scopes import parse_scopes

CURRENT_SCHEMA_VERSION = "2.0.0"

# Tokens are treated as stale this long before their nominal expiry
REFRESH_BUFFER_MS = 5 * 60 * 1000


def now_millis() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


class TokenStatus(str, Enum):
    """Status of the stored credential."""

    VALID = "valid"
    EXPIRED = "expired"
    MISSING = "missing"
    INVALID = "invalid"


class CredentialRecord(BaseModel):
    """The persisted OAuth credential.

    Attributes:
        access_token: Short-lived bearer token.
        refresh_token: Long-lived token used to mint new access tokens.
        expiry_epoch_millis: Absolute expiry instant.
        scope: Space-delimited granted scopes.
        token_type: Token type marker, carried through unmodified.
        created_at_epoch_millis: First issuance time, preserved across refreshes.
        schema_version: On-disk format version.
    """

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias="accessToken", min_length=1)
    refresh_token: str = Field(..., alias="refreshToken", min_length=1)
    expiry_epoch_millis: int = Field(..., alias="expiryEpochMillis")
    scope: str = Field(default="", alias="scope")
    token_type: str = Field(default="Bearer", alias="tokenType")
    created_at_epoch_millis: int = Field(default_factory=now_millis, alias="createdAtEpochMillis")
    schema_version: str = Field(default=CURRENT_SCHEMA_VERSION, alias="schemaVersion")

    @property
    def scopes(self) -> list[str]:
        """Granted scopes as a list."""
        return parse_scopes(self.scope)

    def needs_refresh(
        self, now: int | None = None, buffer_millis: int = REFRESH_BUFFER_MS
    ) -> bool:
        """Check whether the token is expired or inside the refresh buffer.

        Args:
            now: Current epoch millis (defaults to the wall clock).
            buffer_millis: Safety margin before nominal expiry.

        Returns:
            True if ``now + buffer >= expiry``.
        """
        current = now_millis() if now is None else now
        return current + buffer_millis >= self.expiry_epoch_millis

    def is_expired(self, now: int | None = None) -> bool:
        """Check nominal expiry, without the refresh buffer."""
        return self.needs_refresh(now, buffer_millis=0)

    def time_until_expiry(self, now: int | None = None) -> int:
        """Milliseconds until nominal expiry, never negative."""
        current = now_millis() if now is None else now
        return max(0, self.expiry_epoch_millis - current)

    def to_storage_dict(self) -> dict:
        """Serialize with on-disk (camelCase) keys."""
        return self.model_dump(by_alias=True)


class AuthStatus(BaseModel):
    """Read-only diagnostic snapshot of the authentication state."""

    is_authenticated: bool
    has_tokens: bool
    token_path: Path | None = None
    token_expiry: int | None = None
    scopes: list[str] = Field(default_factory=list)
    missing_scopes: list[str] = Field(default_factory=list)
    time_until_expiry: int | None = None
    needs_refresh: bool | None = None
    created_at: int | None = None
    schema_version: str | None = None
