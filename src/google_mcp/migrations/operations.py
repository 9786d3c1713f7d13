"""Operation handlers for credential-record migrations.

Each handler validates parameters, applies the operation to the record
dictionary in place (unless dry-run), and returns success/failure with details.
Persisting the migrated record is the credential store's job.
"""

import logging
from dataclasses import dataclass
from typing import Any

from google_mcp.migrations.models import MigrationOperation, OperationType

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """Result of a migration operation.

    Attributes:
        success: Whether the operation succeeded.
        message: Human-readable result message.
        skipped: Whether operation was skipped (e.g., key already migrated).
    """

    success: bool
    message: str
    skipped: bool = False


def handle_rename_key(
    op: MigrationOperation, data: dict[str, Any], dry_run: bool = False
) -> OperationResult:
    """Rename a key in the record.

    Args:
        op: Migration operation with old_key and new_key.
        data: Record being migrated.
        dry_run: If True, only simulate the operation.

    Returns:
        OperationResult with success status and details.
    """
    if not op.old_key or not op.new_key:
        return OperationResult(False, "rename_key requires 'old_key' and 'new_key' parameters")

    if op.old_key not in data:
        return OperationResult(True, f"Key '{op.old_key}' not found, skipping", skipped=True)

    if op.new_key in data:
        if op.skip_if_target_exists:
            return OperationResult(
                True, f"Key '{op.new_key}' already exists, skipping", skipped=True
            )
        return OperationResult(False, f"Key '{op.new_key}' already exists")

    if dry_run:
        return OperationResult(True, f"Would rename key '{op.old_key}' -> '{op.new_key}'")

    data[op.new_key] = data.pop(op.old_key)
    return OperationResult(True, f"Renamed key '{op.old_key}' -> '{op.new_key}'")


def handle_add_field(
    op: MigrationOperation, data: dict[str, Any], dry_run: bool = False
) -> OperationResult:
    """Add a field to the record.

    Args:
        op: Migration operation with key and value.
        data: Record being migrated.
        dry_run: If True, only simulate the operation.

    Returns:
        OperationResult with success status and details.
    """
    if not op.key:
        return OperationResult(False, "add_field requires 'key' parameter")

    if op.key in data:
        if op.skip_if_target_exists:
            return OperationResult(True, f"Key '{op.key}' already exists, skipping", skipped=True)
        return OperationResult(False, f"Key '{op.key}' already exists")

    if dry_run:
        return OperationResult(True, f"Would add key '{op.key}' = {op.value!r}")

    data[op.key] = op.value
    return OperationResult(True, f"Added key '{op.key}' = {op.value!r}")


def handle_remove_field(
    op: MigrationOperation, data: dict[str, Any], dry_run: bool = False
) -> OperationResult:
    """Remove a field from the record.

    Args:
        op: Migration operation with key.
        data: Record being migrated.
        dry_run: If True, only simulate the operation.

    Returns:
        OperationResult with success status and details.
    """
    if not op.key:
        return OperationResult(False, "remove_field requires 'key' parameter")

    if op.key not in data:
        return OperationResult(True, f"Key '{op.key}' not found, skipping", skipped=True)

    if dry_run:
        return OperationResult(True, f"Would remove key '{op.key}'")

    del data[op.key]
    return OperationResult(True, f"Removed key '{op.key}'")


# Operation handler registry
OPERATION_HANDLERS = {
    OperationType.RENAME_KEY: handle_rename_key,
    OperationType.ADD_FIELD: handle_add_field,
    OperationType.REMOVE_FIELD: handle_remove_field,
}


def execute_operation(
    op: MigrationOperation, data: dict[str, Any], dry_run: bool = False
) -> OperationResult:
    """Execute a migration operation against a record.

    Args:
        op: The operation to execute.
        data: Record being migrated.
        dry_run: If True, only simulate the operation.

    Returns:
        OperationResult with success status and details.
    """
    handler = OPERATION_HANDLERS.get(op.type)
    if not handler:
        return OperationResult(False, f"Unknown operation type: {op.type}")

    return handler(op, data, dry_run)
