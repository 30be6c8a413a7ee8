"""RBAC domain types."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from idplane.core.exceptions import InvalidArgumentError

WILDCARD = "*"

TENANT_ADMIN_ROLE = "Tenant Admin"
TENANT_ADMIN_DESCRIPTION = "Full administrative access to tenant"
TENANT_ADMIN_PERMISSIONS = [
    f"{resource}:{action}"
    for resource in ("users", "roles", "departments", "designations")
    for action in ("create", "read", "update", "delete")
]


class Role(BaseModel):
    """Tenant-scoped set of permission strings."""

    id: UUID
    tenant_id: UUID
    name: str
    description: str | None = None
    permissions: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of an authorization check."""

    allowed: bool
    reason: str


def parse_permission(permission: str) -> tuple[str, str]:
    """Split a ``resource:action`` permission string.

    Raises:
        InvalidArgumentError: If the string is not exactly two non-empty parts.
    """
    parts = permission.split(":")
    if len(parts) != 2 or not all(parts):
        raise InvalidArgumentError(f"Invalid permission format: {permission}")
    return parts[0], parts[1]
