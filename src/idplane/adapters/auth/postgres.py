"""PostgreSQL implementations of the user and credential repositories."""

from typing import Any
from uuid import UUID

import asyncpg

from idplane.adapters.db.app_db import AppDatabase, affected_rows
from idplane.core.auth.types import Credential, OneTimeToken, TokenPurpose, User, UserStatus
from idplane.core.exceptions import AlreadyExistsError


class PostgresUserRepository:
    """PostgreSQL implementation of the user directory."""

    def __init__(self, db: AppDatabase) -> None:
        """Initialize with database connection.

        Args:
            db: Application database instance.
        """
        self._db = db

    def _row_to_user(self, row: dict[str, Any]) -> User:
        """Convert database row to User model."""
        return User(
            id=row["id"],
            tenant_id=row["tenant_id"],
            email=row["email"],
            full_name=row["full_name"],
            status=UserStatus(row["status"]),
            email_verified=row["email_verified"],
            last_login_at=row.get("last_login_at"),
            created_at=row["created_at"],
            updated_at=row.get("updated_at"),
        )

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        """Get user by ID."""
        row = await self._db.fetch_one(
            "SELECT * FROM users WHERE id = $1",
            user_id,
        )
        return self._row_to_user(row) if row else None

    async def get_user_by_email(self, email: str, tenant_id: UUID) -> User | None:
        """Get user by email address within a tenant."""
        row = await self._db.fetch_one(
            "SELECT * FROM users WHERE email = $1 AND tenant_id = $2",
            email.lower(),
            tenant_id,
        )
        return self._row_to_user(row) if row else None

    async def create_user(
        self,
        tenant_id: UUID,
        email: str,
        full_name: str,
        status: UserStatus,
    ) -> User:
        """Create a new user."""
        try:
            row = await self._db.execute_returning(
                """
                INSERT INTO users (tenant_id, email, full_name, status)
                VALUES ($1, $2, $3, $4)
                RETURNING *
                """,
                tenant_id,
                email.lower(),
                full_name,
                status.value,
            )
        except asyncpg.UniqueViolationError:
            raise AlreadyExistsError(f"User with email {email} already exists") from None
        assert row is not None, "INSERT RETURNING should always return a row"
        return self._row_to_user(row)

    async def list_users(self, tenant_id: UUID, limit: int = 50, offset: int = 0) -> list[User]:
        """List users of a tenant ordered by creation time."""
        rows = await self._db.fetch_all(
            """
            SELECT * FROM users
            WHERE tenant_id = $1
            ORDER BY created_at, id
            LIMIT $2 OFFSET $3
            """,
            tenant_id,
            limit,
            offset,
        )
        return [self._row_to_user(row) for row in rows]

    async def update_user(
        self,
        user_id: UUID,
        full_name: str | None = None,
        email: str | None = None,
        email_verified: bool | None = None,
    ) -> User | None:
        """Update user fields."""
        updates = []
        params: list[Any] = []
        param_idx = 1

        if full_name is not None:
            updates.append(f"full_name = ${param_idx}")
            params.append(full_name)
            param_idx += 1

        if email is not None:
            updates.append(f"email = ${param_idx}")
            params.append(email.lower())
            param_idx += 1

        if email_verified is not None:
            updates.append(f"email_verified = ${param_idx}")
            params.append(email_verified)
            param_idx += 1

        if not updates:
            return await self.get_user_by_id(user_id)

        updates.append("updated_at = NOW()")
        params.append(user_id)
        query = f"""
            UPDATE users SET {", ".join(updates)}
            WHERE id = ${param_idx}
            RETURNING *
        """
        try:
            row = await self._db.execute_returning(query, *params)
        except asyncpg.UniqueViolationError:
            raise AlreadyExistsError(f"User with email {email} already exists") from None
        return self._row_to_user(row) if row else None

    async def update_user_status(self, user_id: UUID, status: UserStatus) -> User | None:
        """Move a user to a new status."""
        row = await self._db.execute_returning(
            """
            UPDATE users SET status = $1, updated_at = NOW()
            WHERE id = $2
            RETURNING *
            """,
            status.value,
            user_id,
        )
        return self._row_to_user(row) if row else None

    async def activate_invited_user(self, user_id: UUID, full_name: str) -> User | None:
        """Set the display name and activate an invited user."""
        row = await self._db.execute_returning(
            """
            UPDATE users
            SET full_name = $1, status = 'ACTIVE', updated_at = NOW()
            WHERE id = $2 AND status = 'PENDING_INVITE'
            RETURNING *
            """,
            full_name,
            user_id,
        )
        return self._row_to_user(row) if row else None

    async def update_last_login(self, user_id: UUID) -> None:
        """Record a successful login."""
        await self._db.execute(
            "UPDATE users SET last_login_at = NOW() WHERE id = $1",
            user_id,
        )

    async def delete_user(self, user_id: UUID) -> bool:
        """Delete a user. Credential, tokens and assignments cascade."""
        result = await self._db.execute("DELETE FROM users WHERE id = $1", user_id)
        return affected_rows(result) > 0


class PostgresCredentialRepository:
    """PostgreSQL implementation of the credential store."""

    def __init__(self, db: AppDatabase) -> None:
        """Initialize with database connection.

        Args:
            db: Application database instance.
        """
        self._db = db

    def _row_to_credential(self, row: dict[str, Any]) -> Credential:
        return Credential(
            user_id=row["user_id"],
            password_hash=row["password_hash"],
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def _row_to_token(self, row: dict[str, Any]) -> OneTimeToken:
        return OneTimeToken(
            hash=bytes(row["hash"]),
            user_id=row["user_id"],
            expiry=row["expiry"],
            purpose=TokenPurpose(row["scope"]),
        )

    # Credential operations
    async def create_credential(self, user_id: UUID, password_hash: str) -> Credential:
        """Create the credential for a user."""
        try:
            row = await self._db.execute_returning(
                """
                INSERT INTO credentials (user_id, password_hash)
                VALUES ($1, $2)
                RETURNING *
                """,
                user_id,
                password_hash,
            )
        except asyncpg.UniqueViolationError:
            raise AlreadyExistsError("Credential already exists") from None
        assert row is not None, "INSERT RETURNING should always return a row"
        return self._row_to_credential(row)

    async def get_credential(self, user_id: UUID) -> Credential | None:
        """Get a user's credential."""
        row = await self._db.fetch_one(
            "SELECT * FROM credentials WHERE user_id = $1",
            user_id,
        )
        return self._row_to_credential(row) if row else None

    async def update_credential(self, user_id: UUID, password_hash: str) -> bool:
        """Replace a user's password hash."""
        result = await self._db.execute(
            """
            UPDATE credentials SET password_hash = $2, updated_at = NOW()
            WHERE user_id = $1
            """,
            user_id,
            password_hash,
        )
        return affected_rows(result) > 0

    async def delete_credential(self, user_id: UUID) -> bool:
        """Delete a user's credential."""
        result = await self._db.execute("DELETE FROM credentials WHERE user_id = $1", user_id)
        return affected_rows(result) > 0

    # Token operations
    async def create_token(self, token: OneTimeToken) -> None:
        """Store a one-time token digest. Never overwrites."""
        try:
            await self._db.execute(
                """
                INSERT INTO tokens (hash, user_id, expiry, scope)
                VALUES ($1, $2, $3, $4)
                """,
                token.hash,
                token.user_id,
                token.expiry,
                token.purpose.value,
            )
        except asyncpg.UniqueViolationError:
            raise AlreadyExistsError("Token digest already exists") from None

    async def get_token(self, token_hash: bytes) -> OneTimeToken | None:
        """Look up a token by digest."""
        row = await self._db.fetch_one("SELECT * FROM tokens WHERE hash = $1", token_hash)
        return self._row_to_token(row) if row else None

    async def delete_token(self, token_hash: bytes) -> bool:
        """Delete a token by digest."""
        result = await self._db.execute("DELETE FROM tokens WHERE hash = $1", token_hash)
        return affected_rows(result) > 0

    async def delete_user_tokens(self, user_id: UUID, purpose: TokenPurpose | None = None) -> int:
        """Delete a user's tokens, optionally only those of one purpose."""
        if purpose is None:
            result = await self._db.execute("DELETE FROM tokens WHERE user_id = $1", user_id)
        else:
            result = await self._db.execute(
                "DELETE FROM tokens WHERE user_id = $1 AND scope = $2",
                user_id,
                purpose.value,
            )
        return affected_rows(result)

    async def delete_expired_tokens(self) -> int:
        """Delete every token whose expiry has passed."""
        result = await self._db.execute("DELETE FROM tokens WHERE expiry <= NOW()")
        return affected_rows(result)
