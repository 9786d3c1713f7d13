"""Tests for migration runner."""

from pathlib import Path

import pytest

from google_mcp.auth.models import CURRENT_SCHEMA_VERSION
from google_mcp.migrations.runner import MigrationRunner

LEGACY_RECORD = {
    "accessToken": "legacy_access",
    "refreshToken": "legacy_refresh",
    "expiryDate": 1_700_000_000_000,
    "scope": "openid email",
    "createdAt": 1_600_000_000_000,
    "version": "1.0.0",
}


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    """Create a temporary migrations directory."""
    migrations = tmp_path / "migrations"
    migrations.mkdir()
    return migrations


@pytest.fixture
def runner(migrations_dir: Path) -> MigrationRunner:
    """Create a MigrationRunner over an empty temporary directory."""
    return MigrationRunner(migrations_dir=migrations_dir, target_version="3.0.0")


def write_chain(migrations_dir: Path) -> None:
    """Write two chained migrations 1.0.0 -> 2.0.0 -> 3.0.0."""
    (migrations_dir / "0001_first.yaml").write_text(
        """
id: "0001_first"
version: "2.0.0"
from_version: "1.0.0"
description: "Rename a"
operations:
  - type: rename_key
    old_key: a
    new_key: b
"""
    )
    (migrations_dir / "0002_second.yaml").write_text(
        """
id: "0002_second"
version: "3.0.0"
from_version: "2.0.0"
description: "Add c"
operations:
  - type: add_field
    key: c
    value: 1
"""
    )


class TestLoadMigrations:
    """Tests for loading migration definitions."""

    def test_load_migrations_empty(self, runner: MigrationRunner):
        """Should return empty list when no migrations exist."""
        assert runner.load_migrations() == []

    def test_load_migrations_sorted_by_id(self, runner: MigrationRunner, migrations_dir: Path):
        """Should sort migrations by ID regardless of file order."""
        write_chain(migrations_dir)

        assert [m.id for m in runner.load_migrations()] == ["0001_first", "0002_second"]

    def test_load_migrations_skips_non_migration_files(
        self, runner: MigrationRunner, migrations_dir: Path
    ):
        """Should ignore YAML files whose name does not start with a digit."""
        (migrations_dir / "template.yaml").write_text("id: template\n")

        assert runner.load_migrations() == []

    def test_load_migrations_skips_invalid_yaml(
        self, runner: MigrationRunner, migrations_dir: Path
    ):
        """Should skip files that fail to parse or validate."""
        (migrations_dir / "0001_broken.yaml").write_text("id: [unclosed\n")
        (migrations_dir / "0002_incomplete.yaml").write_text('id: "0002_incomplete"\n')

        assert runner.load_migrations() == []

    def test_bundled_migrations_load(self):
        """Should load the migrations shipped with the package."""
        migrations = MigrationRunner().load_migrations()

        assert migrations
        assert migrations[-1].version == CURRENT_SCHEMA_VERSION


class TestPendingMigrations:
    """Tests for resolving the migration chain."""

    def test_detect_version_prefers_schema_version(self):
        """Should read schemaVersion before the legacy version key."""
        assert MigrationRunner.detect_version({"schemaVersion": "2.0.0", "version": "1"}) == "2.0.0"
        assert MigrationRunner.detect_version({"version": "1.0.0"}) == "1.0.0"
        assert MigrationRunner.detect_version({}) is None

    def test_current_record_has_no_pending(self, runner: MigrationRunner):
        """Should return an empty chain for current records."""
        assert runner.get_pending_migrations({"schemaVersion": "3.0.0"}) == []
        assert runner.needs_migration({"schemaVersion": "3.0.0"}) is False

    def test_resolves_full_chain(self, runner: MigrationRunner, migrations_dir: Path):
        """Should chain migrations by from_version."""
        write_chain(migrations_dir)

        pending = runner.get_pending_migrations({"version": "1.0.0"})

        assert pending is not None
        assert [m.id for m in pending] == ["0001_first", "0002_second"]
        assert runner.needs_migration({"version": "1.0.0"}) is True

    def test_unknown_version_has_no_chain(self, runner: MigrationRunner, migrations_dir: Path):
        """Should return None for versions no migration starts from."""
        write_chain(migrations_dir)

        assert runner.get_pending_migrations({"schemaVersion": "9.0.0"}) is None
        assert runner.get_pending_migrations({}) is None


class TestMigrate:
    """Tests for migrating records."""

    def test_migrate_applies_chain(self, runner: MigrationRunner, migrations_dir: Path):
        """Should apply every migration and stamp the target version."""
        write_chain(migrations_dir)
        original = {"a": "value", "version": "1.0.0"}

        result = runner.migrate(original)

        assert result.success
        assert result.applied == ["0001_first", "0002_second"]
        assert result.data == {"b": "value", "c": 1, "schemaVersion": "3.0.0"}
        assert original == {"a": "value", "version": "1.0.0"}

    def test_migrate_dry_run_leaves_data_unchanged(
        self, runner: MigrationRunner, migrations_dir: Path
    ):
        """Should report migrations without changing the record."""
        write_chain(migrations_dir)

        result = runner.migrate({"a": "value", "version": "1.0.0"}, dry_run=True)

        assert result.success
        assert result.applied == ["0001_first", "0002_second"]
        assert result.data == {"a": "value", "version": "1.0.0"}

    def test_migrate_stops_on_failure(self, runner: MigrationRunner, migrations_dir: Path):
        """Should stop at the failing migration and report failure."""
        write_chain(migrations_dir)

        result = runner.migrate({"a": 1, "b": 2, "version": "1.0.0"})

        assert not result.success
        assert result.applied == []

    def test_migrate_without_path_fails(self, runner: MigrationRunner):
        """Should fail when no chain reaches the target."""
        result = runner.migrate({"schemaVersion": "0.1.0"})
        assert not result.success

    def test_progress_callback_receives_messages(
        self, runner: MigrationRunner, migrations_dir: Path
    ):
        """Should forward progress messages to the callback."""
        write_chain(migrations_dir)
        messages: list[str] = []
        runner.set_progress_callback(messages.append)

        runner.migrate({"a": 1, "version": "1.0.0"})

        assert any("0001_first" in m for m in messages)

    def test_bundled_migration_upgrades_legacy_record(self):
        """Should upgrade a 1.0.0 record to the current layout."""
        result = MigrationRunner().migrate(LEGACY_RECORD)

        assert result.success
        assert result.data == {
            "accessToken": "legacy_access",
            "refreshToken": "legacy_refresh",
            "expiryEpochMillis": 1_700_000_000_000,
            "scope": "openid email",
            "createdAtEpochMillis": 1_600_000_000_000,
            "tokenType": "Bearer",
            "schemaVersion": CURRENT_SCHEMA_VERSION,
        }
