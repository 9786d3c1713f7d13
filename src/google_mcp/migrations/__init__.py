"""YAML-based declarative migrations for the stored credential record.

Older credential files are upgraded in memory when loaded and written back
in the current layout.

Example usage:
    ```python
    from google_mcp.migrations import MigrationRunner

    runner = MigrationRunner()
    result = runner.migrate(raw_record)
    print(f"Applied {len(result.applied)} migrations")

    # Dry-run mode
    runner.migrate(raw_record, dry_run=True)
    ```
"""

from google_mcp.migrations.models import Migration, MigrationOperation, OperationType
from google_mcp.migrations.runner import MigrationResult, MigrationRunner

__all__ = [
    "Migration",
    "MigrationOperation",
    "MigrationResult",
    "MigrationRunner",
    "OperationType",
]
