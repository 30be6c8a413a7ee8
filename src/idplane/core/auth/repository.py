"""Repository protocols for users, credentials and one-time tokens."""

from typing import Protocol, runtime_checkable
from uuid import UUID

from idplane.core.auth.types import Credential, OneTimeToken, TokenPurpose, User, UserStatus


@runtime_checkable
class UserRepository(Protocol):
    """Protocol for user directory operations.

    Implementations provide actual database access (PostgreSQL, in-memory).
    """

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        """Get user by ID."""
        ...

    async def get_user_by_email(self, email: str, tenant_id: UUID) -> User | None:
        """Get user by email address within a tenant."""
        ...

    async def create_user(
        self,
        tenant_id: UUID,
        email: str,
        full_name: str,
        status: UserStatus,
    ) -> User:
        """Create a new user.

        Raises:
            AlreadyExistsError: If the email is taken in the tenant.
        """
        ...

    async def list_users(self, tenant_id: UUID, limit: int = 50, offset: int = 0) -> list[User]:
        """List users of a tenant ordered by creation time."""
        ...

    async def update_user(
        self,
        user_id: UUID,
        full_name: str | None = None,
        email: str | None = None,
        email_verified: bool | None = None,
    ) -> User | None:
        """Update user fields."""
        ...

    async def update_user_status(self, user_id: UUID, status: UserStatus) -> User | None:
        """Move a user to a new status."""
        ...

    async def activate_invited_user(self, user_id: UUID, full_name: str) -> User | None:
        """Set the display name and activate a user invited by an admin."""
        ...

    async def update_last_login(self, user_id: UUID) -> None:
        """Record a successful login."""
        ...

    async def delete_user(self, user_id: UUID) -> bool:
        """Delete a user together with its credential, tokens and role assignments."""
        ...


@runtime_checkable
class CredentialRepository(Protocol):
    """Protocol for the credential store: password hashes and token digests."""

    async def create_credential(self, user_id: UUID, password_hash: str) -> Credential:
        """Create the credential for a user."""
        ...

    async def get_credential(self, user_id: UUID) -> Credential | None:
        """Get a user's credential."""
        ...

    async def update_credential(self, user_id: UUID, password_hash: str) -> bool:
        """Replace a user's password hash. Returns False if none exists."""
        ...

    async def delete_credential(self, user_id: UUID) -> bool:
        """Delete a user's credential."""
        ...

    async def create_token(self, token: OneTimeToken) -> None:
        """Store a one-time token digest.

        Raises:
            AlreadyExistsError: If the digest is already stored.
        """
        ...

    async def get_token(self, token_hash: bytes) -> OneTimeToken | None:
        """Look up a token by digest."""
        ...

    async def delete_token(self, token_hash: bytes) -> bool:
        """Delete a token by digest."""
        ...

    async def delete_user_tokens(self, user_id: UUID, purpose: TokenPurpose | None = None) -> int:
        """Delete a user's tokens, optionally only those of one purpose."""
        ...

    async def delete_expired_tokens(self) -> int:
        """Delete every token whose expiry has passed."""
        ...
