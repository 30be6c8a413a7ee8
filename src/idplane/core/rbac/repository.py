"""Role repository protocol."""

from typing import Protocol, runtime_checkable
from uuid import UUID

from idplane.core.rbac.types import Role


@runtime_checkable
class RoleRepository(Protocol):
    """Protocol for role and role-assignment storage."""

    async def create_role(
        self,
        tenant_id: UUID,
        name: str,
        permissions: list[str],
        description: str | None = None,
    ) -> Role:
        """Create a role.

        Raises:
            AlreadyExistsError: If the tenant already has a role with this name.
        """
        ...

    async def get_role(self, role_id: UUID) -> Role | None:
        """Get role by ID."""
        ...

    async def get_role_by_name(self, tenant_id: UUID, name: str) -> Role | None:
        """Get a tenant's role by name."""
        ...

    async def list_roles(self, tenant_id: UUID) -> list[Role]:
        """List a tenant's roles ordered by name."""
        ...

    async def delete_role(self, role_id: UUID) -> bool:
        """Delete a role and its assignments."""
        ...

    async def assign_role(self, user_id: UUID, tenant_id: UUID, role_id: UUID) -> None:
        """Assign a role to a user. Assigning twice is a no-op."""
        ...

    async def revoke_role(self, user_id: UUID, role_id: UUID) -> bool:
        """Remove a role assignment."""
        ...

    async def list_user_roles(self, user_id: UUID) -> list[Role]:
        """List every role assigned to a user."""
        ...
