"""PostgreSQL roles repository."""

from typing import Any
from uuid import UUID

import asyncpg

from idplane.adapters.db.app_db import AppDatabase, affected_rows
from idplane.core.exceptions import AlreadyExistsError
from idplane.core.rbac.types import Role

_ROLE_COLUMNS = "r.id, r.tenant_id, r.name, r.description, r.permissions, r.created_at, r.updated_at"


class PostgresRoleRepository:
    """Repository for roles and role assignments."""

    def __init__(self, db: AppDatabase) -> None:
        """Initialize the repository."""
        self._db = db

    async def create_role(
        self,
        tenant_id: UUID,
        name: str,
        permissions: list[str],
        description: str | None = None,
    ) -> Role:
        """Create a new role."""
        try:
            row = await self._db.execute_returning(
                """
                INSERT INTO roles (tenant_id, name, description, permissions)
                VALUES ($1, $2, $3, $4)
                RETURNING *
                """,
                tenant_id,
                name,
                description,
                permissions,
            )
        except asyncpg.UniqueViolationError:
            raise AlreadyExistsError(f"Role {name!r} already exists") from None
        assert row is not None, "INSERT RETURNING should always return a row"
        return self._row_to_role(row)

    async def get_role(self, role_id: UUID) -> Role | None:
        """Get role by ID."""
        row = await self._db.fetch_one(
            f"SELECT {_ROLE_COLUMNS} FROM roles r WHERE r.id = $1",
            role_id,
        )
        return self._row_to_role(row) if row else None

    async def get_role_by_name(self, tenant_id: UUID, name: str) -> Role | None:
        """Get role by name."""
        row = await self._db.fetch_one(
            f"SELECT {_ROLE_COLUMNS} FROM roles r WHERE r.tenant_id = $1 AND r.name = $2",
            tenant_id,
            name,
        )
        return self._row_to_role(row) if row else None

    async def list_roles(self, tenant_id: UUID) -> list[Role]:
        """List all roles of a tenant."""
        rows = await self._db.fetch_all(
            f"SELECT {_ROLE_COLUMNS} FROM roles r WHERE r.tenant_id = $1 ORDER BY r.name",
            tenant_id,
        )
        return [self._row_to_role(row) for row in rows]

    async def delete_role(self, role_id: UUID) -> bool:
        """Delete a role. Assignments cascade."""
        result = await self._db.execute("DELETE FROM roles WHERE id = $1", role_id)
        return affected_rows(result) > 0

    async def assign_role(self, user_id: UUID, tenant_id: UUID, role_id: UUID) -> None:
        """Assign a role to a user."""
        await self._db.execute(
            """
            INSERT INTO user_roles (user_id, tenant_id, role_id)
            VALUES ($1, $2, $3)
            ON CONFLICT (user_id, role_id) DO NOTHING
            """,
            user_id,
            tenant_id,
            role_id,
        )

    async def revoke_role(self, user_id: UUID, role_id: UUID) -> bool:
        """Remove a role from a user."""
        result = await self._db.execute(
            "DELETE FROM user_roles WHERE user_id = $1 AND role_id = $2",
            user_id,
            role_id,
        )
        return affected_rows(result) > 0

    async def list_user_roles(self, user_id: UUID) -> list[Role]:
        """List the roles assigned to a user."""
        rows = await self._db.fetch_all(
            f"""
            SELECT {_ROLE_COLUMNS}
            FROM roles r
            JOIN user_roles ur ON ur.role_id = r.id
            WHERE ur.user_id = $1
            ORDER BY r.name
            """,
            user_id,
        )
        return [self._row_to_role(row) for row in rows]

    def _row_to_role(self, row: dict[str, Any]) -> Role:
        return Role(
            id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            description=row.get("description"),
            permissions=list(row.get("permissions") or []),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )
