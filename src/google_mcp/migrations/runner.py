"""Migration runner for upgrading stored credential records.

This module provides the MigrationRunner class which loads migration
definitions from YAML files and applies the chain of migrations leading from
a record's schema version to the current one.
"""

import copy
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from google_mcp.migrations.models import Migration, MigrationOperation
from google_mcp.migrations.operations import OperationResult, execute_operation

logger = logging.getLogger(__name__)

SCHEMA_VERSION_KEY = "schemaVersion"
LEGACY_VERSION_KEY = "version"


@dataclass
class MigrationResult:
    """Outcome of migrating one record.

    Attributes:
        data: The migrated record (a copy; the input is never modified).
        applied: IDs of migrations applied, in order.
        success: False if an operation failed or no chain reaches the target.
    """

    data: dict[str, Any]
    applied: list[str] = field(default_factory=list)
    success: bool = True


class MigrationRunner:
    """Runner for YAML-based declarative record migrations.

    Attributes:
        migrations_dir: Directory containing migration YAML files.
        target_version: Schema version records are migrated to.

    Example:
        ```python
        runner = MigrationRunner()

        result = runner.migrate(raw_record)
        if result.success:
            record = CredentialRecord.model_validate(result.data)
        ```
    """

    def __init__(
        self,
        migrations_dir: Path | None = None,
        target_version: str | None = None,
    ) -> None:
        """Initialize migration runner.

        Args:
            migrations_dir: Directory containing migration YAML files.
                Defaults to the package's migrations/ directory.
            target_version: Version to migrate to. Defaults to the current
                credential record schema version.
        """
        if target_version is None:
            from google_mcp.auth.models import CURRENT_SCHEMA_VERSION

            target_version = CURRENT_SCHEMA_VERSION

        self.migrations_dir = migrations_dir or Path(__file__).parent
        self.target_version = target_version
        self._on_progress: Callable[[str], None] | None = None

    def set_progress_callback(self, callback: Callable[[str], None] | None) -> None:
        """Set a callback for progress updates.

        Args:
            callback: Function to call with progress messages.
        """
        self._on_progress = callback

    def _log(self, message: str) -> None:
        """Log a message and call progress callback if set."""
        logger.info(message)
        if self._on_progress:
            self._on_progress(message)

    def load_migrations(self) -> list[Migration]:
        """Load all migration YAML files from the migrations directory.

        Returns:
            List of Migration objects, sorted by ID.
        """
        migrations: list[Migration] = []

        for yaml_file in self.migrations_dir.glob("*.yaml"):
            # Skip non-migration files
            if not yaml_file.stem[0].isdigit():
                continue

            try:
                data = yaml.safe_load(yaml_file.read_text())
                if data:
                    ops_data = data.pop("operations", [])
                    data["operations"] = [MigrationOperation.model_validate(op) for op in ops_data]
                    migrations.append(Migration.model_validate(data))
            except (yaml.YAMLError, ValueError) as e:
                logger.warning(f"Failed to load migration {yaml_file}: {e}")
                continue

        return sorted(migrations, key=lambda m: m.id)

    @staticmethod
    def detect_version(data: dict[str, Any]) -> str | None:
        """Read the schema version of a raw record.

        Returns:
            ``schemaVersion`` if present, else the legacy ``version`` key,
            else None.
        """
        version = data.get(SCHEMA_VERSION_KEY) or data.get(LEGACY_VERSION_KEY)
        return str(version) if version is not None else None

    def get_pending_migrations(self, data: dict[str, Any]) -> list[Migration] | None:
        """Resolve the migration chain for a record.

        Args:
            data: Raw record.

        Returns:
            Migrations to apply in order (empty if already current), or None
            if no chain leads from the record's version to the target.
        """
        version = self.detect_version(data)
        if version == self.target_version:
            return []
        if version is None:
            return None

        by_source = {m.from_version: m for m in self.load_migrations()}
        chain: list[Migration] = []
        seen: set[str] = set()
        while version != self.target_version:
            migration = by_source.get(version)
            if migration is None or version in seen:
                return None
            seen.add(version)
            chain.append(migration)
            version = migration.version
        return chain

    def needs_migration(self, data: dict[str, Any]) -> bool:
        """True if the record is on a known older schema version."""
        return bool(self.get_pending_migrations(data))

    def run_migration(
        self,
        migration: Migration,
        data: dict[str, Any],
        dry_run: bool = False,
    ) -> tuple[bool, list[OperationResult]]:
        """Apply a single migration to a record in place.

        Args:
            migration: The migration to execute.
            data: Record to modify.
            dry_run: If True, only simulate operations.

        Returns:
            Tuple of (success, list of operation results).
        """
        self._log(f"{'[DRY-RUN] ' if dry_run else ''}Running migration: {migration.id}")
        self._log(f"  Description: {migration.description}")

        results: list[OperationResult] = []
        for i, op in enumerate(migration.operations, 1):
            self._log(f"  Operation {i}/{len(migration.operations)}: {op.type.value}")

            result = execute_operation(op, data, dry_run)
            results.append(result)

            if not result.success:
                self._log(f"    [FAILED] {result.message}")
                return False, results

            status = "[SKIPPED]" if result.skipped else "[OK]"
            self._log(f"    {status} {result.message}")

        if not dry_run:
            data.pop(LEGACY_VERSION_KEY, None)
            data[SCHEMA_VERSION_KEY] = migration.version
        return True, results

    def migrate(self, data: dict[str, Any], dry_run: bool = False) -> MigrationResult:
        """Migrate a record to the target schema version.

        Args:
            data: Raw record as read from disk.
            dry_run: If True, only report what would be applied.

        Returns:
            MigrationResult with the migrated copy and applied migration IDs.
        """
        working = copy.deepcopy(data)
        pending = self.get_pending_migrations(working)

        if pending is None:
            self._log(
                f"No migration path from schema version "
                f"{self.detect_version(working)!r} to {self.target_version}"
            )
            return MigrationResult(data=working, success=False)

        if not pending:
            self._log("No pending migrations")
            return MigrationResult(data=working)

        self._log(f"{'[DRY-RUN] ' if dry_run else ''}Found {len(pending)} pending migration(s)")

        applied: list[str] = []
        for migration in pending:
            success, _ = self.run_migration(migration, working, dry_run)
            if not success:
                self._log(f"Migration {migration.id} failed, stopping")
                return MigrationResult(data=working, applied=applied, success=False)
            applied.append(migration.id)

        return MigrationResult(data=working, applied=applied)
