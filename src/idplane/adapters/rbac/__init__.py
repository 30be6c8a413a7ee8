"""RBAC adapters."""

from idplane.adapters.rbac.roles_repository import PostgresRoleRepository

__all__ = ["PostgresRoleRepository"]
