"""Auth adapters."""

from idplane.adapters.auth.postgres import PostgresCredentialRepository, PostgresUserRepository

__all__ = ["PostgresCredentialRepository", "PostgresUserRepository"]
