"""In-memory storage backend.

Backs tests and ``STORAGE=memory`` development runs. Repository methods
never await while mutating, so each call is atomic on the event loop.
"""

import copy
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID, uuid4

from idplane.core.auth.tokens import is_token_expired
from idplane.core.auth.types import Credential, OneTimeToken, TokenPurpose, User, UserStatus
from idplane.core.exceptions import AlreadyExistsError
from idplane.core.rbac.types import Role

_in_transaction: ContextVar[bool] = ContextVar("idplane_memory_tx", default=False)


@dataclass
class MemoryState:
    """Everything the in-memory backend stores."""

    users: dict[UUID, User] = field(default_factory=dict)
    credentials: dict[UUID, Credential] = field(default_factory=dict)
    tokens: dict[bytes, OneTimeToken] = field(default_factory=dict)
    roles: dict[UUID, Role] = field(default_factory=dict)
    # (user_id, role_id) -> tenant_id
    assignments: dict[tuple[UUID, UUID], UUID] = field(default_factory=dict)


class MemoryStore:
    """Shared state for the in-memory repositories.

    ``transaction()`` snapshots the state and restores it if the block
    raises. A rollback also discards writes other tasks made meanwhile,
    which is fine for tests and single-user development.
    """

    def __init__(self) -> None:
        self.state = MemoryState()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Group writes; roll back to the snapshot on error."""
        if _in_transaction.get():
            yield
            return

        snapshot = copy.deepcopy(self.state)
        token = _in_transaction.set(True)
        try:
            yield
        except BaseException:
            self.state = snapshot
            raise
        finally:
            _in_transaction.reset(token)


def _now() -> datetime:
    return datetime.now(UTC)


class MemoryUserRepository:
    """In-memory user directory."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    @property
    def _users(self) -> dict[UUID, User]:
        return self._store.state.users

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        return self._users.get(user_id)

    async def get_user_by_email(self, email: str, tenant_id: UUID) -> User | None:
        email = email.lower()
        for user in self._users.values():
            if user.tenant_id == tenant_id and user.email == email:
                return user
        return None

    async def create_user(
        self,
        tenant_id: UUID,
        email: str,
        full_name: str,
        status: UserStatus,
    ) -> User:
        if await self.get_user_by_email(email, tenant_id) is not None:
            raise AlreadyExistsError(f"User with email {email} already exists")
        now = _now()
        user = User(
            id=uuid4(),
            tenant_id=tenant_id,
            email=email.lower(),
            full_name=full_name,
            status=status,
            created_at=now,
            updated_at=now,
        )
        self._users[user.id] = user
        return user

    async def list_users(self, tenant_id: UUID, limit: int = 50, offset: int = 0) -> list[User]:
        users = sorted(
            (u for u in self._users.values() if u.tenant_id == tenant_id),
            key=lambda u: (u.created_at, str(u.id)),
        )
        return users[offset : offset + limit]

    async def update_user(
        self,
        user_id: UUID,
        full_name: str | None = None,
        email: str | None = None,
        email_verified: bool | None = None,
    ) -> User | None:
        user = self._users.get(user_id)
        if user is None:
            return None

        changes: dict[str, object] = {}
        if full_name is not None:
            changes["full_name"] = full_name
        if email is not None:
            email = email.lower()
            other = await self.get_user_by_email(email, user.tenant_id)
            if other is not None and other.id != user_id:
                raise AlreadyExistsError(f"User with email {email} already exists")
            changes["email"] = email
        if email_verified is not None:
            changes["email_verified"] = email_verified
        if not changes:
            return user

        return self._save(user, **changes)

    async def update_user_status(self, user_id: UUID, status: UserStatus) -> User | None:
        user = self._users.get(user_id)
        if user is None:
            return None
        return self._save(user, status=status)

    async def activate_invited_user(self, user_id: UUID, full_name: str) -> User | None:
        user = self._users.get(user_id)
        if user is None or user.status != UserStatus.PENDING_INVITE:
            return None
        return self._save(user, full_name=full_name, status=UserStatus.ACTIVE)

    async def update_last_login(self, user_id: UUID) -> None:
        user = self._users.get(user_id)
        if user is not None:
            self._users[user_id] = user.model_copy(update={"last_login_at": _now()})

    async def delete_user(self, user_id: UUID) -> bool:
        state = self._store.state
        if state.users.pop(user_id, None) is None:
            return False
        # Mirror the ON DELETE CASCADE foreign keys
        state.credentials.pop(user_id, None)
        for digest in [d for d, t in state.tokens.items() if t.user_id == user_id]:
            del state.tokens[digest]
        for key in [k for k in state.assignments if k[0] == user_id]:
            del state.assignments[key]
        return True

    def _save(self, user: User, **changes: object) -> User:
        updated = user.model_copy(update={**changes, "updated_at": _now()})
        self._users[user.id] = updated
        return updated


class MemoryCredentialRepository:
    """In-memory credential store."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    async def create_credential(self, user_id: UUID, password_hash: str) -> Credential:
        credentials = self._store.state.credentials
        if user_id in credentials:
            raise AlreadyExistsError("Credential already exists")
        now = _now()
        credential = Credential(
            user_id=user_id,
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
        )
        credentials[user_id] = credential
        return credential

    async def get_credential(self, user_id: UUID) -> Credential | None:
        return self._store.state.credentials.get(user_id)

    async def update_credential(self, user_id: UUID, password_hash: str) -> bool:
        credentials = self._store.state.credentials
        credential = credentials.get(user_id)
        if credential is None:
            return False
        credentials[user_id] = credential.model_copy(
            update={"password_hash": password_hash, "updated_at": _now()}
        )
        return True

    async def delete_credential(self, user_id: UUID) -> bool:
        return self._store.state.credentials.pop(user_id, None) is not None

    async def create_token(self, token: OneTimeToken) -> None:
        tokens = self._store.state.tokens
        if token.hash in tokens:
            raise AlreadyExistsError("Token digest already exists")
        tokens[token.hash] = token

    async def get_token(self, token_hash: bytes) -> OneTimeToken | None:
        return self._store.state.tokens.get(token_hash)

    async def delete_token(self, token_hash: bytes) -> bool:
        return self._store.state.tokens.pop(token_hash, None) is not None

    async def delete_user_tokens(self, user_id: UUID, purpose: TokenPurpose | None = None) -> int:
        tokens = self._store.state.tokens
        doomed = [
            digest
            for digest, token in tokens.items()
            if token.user_id == user_id and (purpose is None or token.purpose == purpose)
        ]
        for digest in doomed:
            del tokens[digest]
        return len(doomed)

    async def delete_expired_tokens(self) -> int:
        tokens = self._store.state.tokens
        doomed = [digest for digest, token in tokens.items() if is_token_expired(token.expiry)]
        for digest in doomed:
            del tokens[digest]
        return len(doomed)


class MemoryRoleRepository:
    """In-memory roles and role assignments."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    async def create_role(
        self,
        tenant_id: UUID,
        name: str,
        permissions: list[str],
        description: str | None = None,
    ) -> Role:
        if await self.get_role_by_name(tenant_id, name) is not None:
            raise AlreadyExistsError(f"Role {name!r} already exists")
        now = _now()
        role = Role(
            id=uuid4(),
            tenant_id=tenant_id,
            name=name,
            description=description,
            permissions=list(permissions),
            created_at=now,
            updated_at=now,
        )
        self._store.state.roles[role.id] = role
        return role

    async def get_role(self, role_id: UUID) -> Role | None:
        return self._store.state.roles.get(role_id)

    async def get_role_by_name(self, tenant_id: UUID, name: str) -> Role | None:
        for role in self._store.state.roles.values():
            if role.tenant_id == tenant_id and role.name == name:
                return role
        return None

    async def list_roles(self, tenant_id: UUID) -> list[Role]:
        roles = [r for r in self._store.state.roles.values() if r.tenant_id == tenant_id]
        return sorted(roles, key=lambda r: r.name)

    async def delete_role(self, role_id: UUID) -> bool:
        state = self._store.state
        if state.roles.pop(role_id, None) is None:
            return False
        for key in [k for k in state.assignments if k[1] == role_id]:
            del state.assignments[key]
        return True

    async def assign_role(self, user_id: UUID, tenant_id: UUID, role_id: UUID) -> None:
        self._store.state.assignments.setdefault((user_id, role_id), tenant_id)

    async def revoke_role(self, user_id: UUID, role_id: UUID) -> bool:
        return self._store.state.assignments.pop((user_id, role_id), None) is not None

    async def list_user_roles(self, user_id: UUID) -> list[Role]:
        state = self._store.state
        roles = [
            state.roles[role_id]
            for (assigned_user, role_id) in state.assignments
            if assigned_user == user_id and role_id in state.roles
        ]
        return sorted(roles, key=lambda r: r.name)
