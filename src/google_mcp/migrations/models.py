"""Data models for credential-record schema migrations.

This module defines Pydantic models for migration definitions and the
operations they apply to a credential record.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class OperationType(str, Enum):
    """Supported migration operation types."""

    RENAME_KEY = "rename_key"
    ADD_FIELD = "add_field"
    REMOVE_FIELD = "remove_field"


class MigrationOperation(BaseModel):
    """A single migration operation on a record.

    Attributes:
        type: The operation type (rename_key, add_field, remove_field).
        old_key: Key to rename from.
        new_key: Key to rename to.
        key: Field key for add/remove.
        value: Value for add_field.
        skip_if_target_exists: Treat an existing target key as already migrated.
    """

    type: OperationType = Field(..., description="Operation type")
    old_key: str | None = Field(default=None, description="Key to rename from")
    new_key: str | None = Field(default=None, description="Key to rename to")
    key: str | None = Field(default=None, description="Field key for add/remove")
    value: Any = Field(default=None, description="Value for add_field operation")
    skip_if_target_exists: bool = Field(default=False, description="Skip if target already exists")


class Migration(BaseModel):
    """A complete migration definition.

    Migrations are defined in YAML files and chained by version: a migration
    applies to records whose schema version equals ``from_version`` and leaves
    them at ``version``.

    Attributes:
        id: Unique migration identifier (e.g., "0001_camelcase_record_fields").
        version: Schema version after migration (e.g., "2.0.0").
        from_version: Schema version the migration applies to (e.g., "1.0.0").
        description: Human-readable description.
        created_at: Migration creation date.
        operations: List of operations to perform.
    """

    id: str = Field(..., description="Unique migration ID")
    version: str = Field(..., description="Schema version after migration")
    from_version: str = Field(..., description="Schema version migrated from")
    description: str = Field(..., description="Human-readable description")
    created_at: str | None = Field(default=None, description="Migration creation date")
    operations: list[MigrationOperation] = Field(
        default_factory=list, description="Operations to perform"
    )
