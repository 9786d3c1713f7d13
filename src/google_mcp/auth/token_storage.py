"""File-backed storage for the OAuth credential record.

This module persists exactly one ``CredentialRecord`` as JSON.

Storage Location: ./.tokens/calendar-tokens.json (override with GOOGLE_MCP_TOKEN_PATH)

Writes are atomic: the record is written to a temporary file in the same
directory and renamed over the destination, so a crash never leaves a
half-written credential behind. The directory is created with 0o700 and the
file with 0o600 permissions.

Records written by older releases are upgraded through the YAML migrations in
``google_mcp.migrations`` when loaded, then written back in the current layout.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from google_mcp.auth.models import CredentialRecord, TokenStatus
from google_mcp.config import default_token_path
from google_mcp.errors import StorageError
from google_mcp.migrations import MigrationRunner

logger = logging.getLogger(__name__)


class CredentialStore:
    """JSON file storage for the single credential record.

    Attributes:
        token_path: Path to the credential file.

    Example:
        ```python
        store = CredentialStore()

        record = CredentialRecord(
            access_token="ya29...",
            refresh_token="1//...",
            expiry_epoch_millis=now_millis() + 3600 * 1000,
            scope="https://www.googleapis.com/auth/calendar",
        )
        store.save(record)

        loaded = store.load()
        if loaded:
            print(f"Token expires at: {loaded.expiry_epoch_millis}")
        ```
    """

    def __init__(
        self,
        token_path: Path | None = None,
        migration_runner: MigrationRunner | None = None,
    ) -> None:
        """Initialize credential storage.

        Args:
            token_path: Custom path for the credential file.
                Defaults to ./.tokens/calendar-tokens.json.
            migration_runner: Runner used to upgrade older records.
        """
        self.token_path = Path(token_path) if token_path else default_token_path()
        self.migration_runner = migration_runner or MigrationRunner()

    @property
    def exists(self) -> bool:
        """True if a credential file is present (it may still be invalid)."""
        return self.token_path.exists()

    def _ensure_credentials_dir(self) -> None:
        """Create credentials directory with secure permissions if needed."""
        creds_dir = self.token_path.parent
        if not creds_dir.exists():
            creds_dir.mkdir(parents=True, mode=0o700)

    def read_raw(self) -> dict[str, Any] | None:
        """Read the credential file as a dictionary.

        Returns:
            Parsed JSON object, or None if the file is missing or malformed.

        Raises:
            StorageError: If the file exists but cannot be read.
        """
        try:
            content = self.token_path.read_text()
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            logger.warning(f"Ignoring undecodable credential file {self.token_path}: {e}")
            return None
        except OSError as e:
            raise StorageError(f"Failed to read credentials from {self.token_path}: {e}") from e

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring malformed credential file {self.token_path}: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Ignoring credential file {self.token_path}: not a JSON object")
            return None
        return data

    def _upgrade(self, data: dict[str, Any]) -> dict[str, Any] | None:
        """Bring a raw record to the current schema version.

        Returns:
            The current-layout record, or None if it cannot be upgraded.
        """
        pending = self.migration_runner.get_pending_migrations(data)
        if pending == []:
            return data
        if pending is None:
            version = self.migration_runner.detect_version(data)
            logger.warning(
                f"Credential file has unsupported schema version {version!r}; "
                "re-authentication required"
            )
            return None

        result = self.migration_runner.migrate(data)
        if not result.success:
            logger.warning("Credential record migration failed; re-authentication required")
            return None

        logger.info(f"Migrated credential record: {', '.join(result.applied)}")
        return result.data

    def load(self, persist_migration: bool = True) -> CredentialRecord | None:
        """Load the stored credential record.

        Args:
            persist_migration: Write an upgraded record back to disk.

        Returns:
            The record, or None if absent, malformed, incomplete or on an
            unsupported schema version.

        Raises:
            StorageError: If the file exists but cannot be read.
        """
        data = self.read_raw()
        if data is None:
            return None

        upgraded = self._upgrade(data)
        if upgraded is None:
            return None

        try:
            record = CredentialRecord.model_validate(upgraded)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid credential record in {self.token_path}: {e}")
            return None

        if persist_migration and upgraded is not data:
            # Persist the upgraded layout; failure here only costs a re-migration
            try:
                self.save(record)
            except StorageError as e:
                logger.warning(f"Could not rewrite migrated credential record: {e}")

        return record

    def save(self, record: CredentialRecord) -> None:
        """Persist the credential record, replacing any previous one.

        Args:
            record: Record to store.

        Raises:
            StorageError: If the record cannot be written.
        """
        content = json.dumps(record.to_storage_dict(), indent=2)

        try:
            self._ensure_credentials_dir()
            fd, tmp_path = tempfile.mkstemp(
                dir=self.token_path.parent, prefix=".tmp_", suffix=".json"
            )
        except OSError as e:
            raise StorageError(f"Failed to store credentials at {self.token_path}: {e}") from e

        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.token_path)
        except OSError as e:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise StorageError(f"Failed to store credentials at {self.token_path}: {e}") from e

        logger.debug(f"Stored credentials at {self.token_path}")

    def clear(self) -> bool:
        """Delete the stored credential record.

        Returns:
            True if a record was deleted, False if none existed.

        Raises:
            StorageError: If the file exists but cannot be removed.
        """
        try:
            self.token_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to remove credentials at {self.token_path}: {e}") from e

        logger.info(f"Cleared stored credentials at {self.token_path}")
        return True

    def get_status(self) -> TokenStatus:
        """Get the status of the stored credential.

        Returns:
            TokenStatus indicating the credential's current state.
        """
        try:
            record = self.load(persist_migration=False)
        except StorageError as e:
            logger.warning(f"Could not read stored credentials: {e}")
            return TokenStatus.INVALID

        if record is None:
            if self.exists:
                # File exists but couldn't be parsed
                return TokenStatus.INVALID
            return TokenStatus.MISSING

        if record.needs_refresh():
            return TokenStatus.EXPIRED

        return TokenStatus.VALID
