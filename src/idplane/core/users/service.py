"""User and role directory service.

Every mutation is followed by a lifecycle event. Events are published
after the repository writes; a publish failure is raised to the caller
but the write stays in place.
"""

from uuid import UUID

import structlog

from idplane.core.auth.repository import CredentialRepository, UserRepository
from idplane.core.auth.types import User, UserStatus
from idplane.core.events import (
    SYSTEM_ACTOR,
    RoleAssignedEvent,
    RoleRevokedEvent,
    UserCreatedEvent,
    UserDeletedEvent,
    UserInvitedEvent,
    UserStatusChangedEvent,
    UserUpdatedEvent,
)
from idplane.core.exceptions import AlreadyExistsError, InvalidArgumentError, NotFoundError
from idplane.core.interfaces import EventPublisher, TransactionManager
from idplane.core.publishing import publish_all
from idplane.core.rbac.repository import RoleRepository
from idplane.core.rbac.types import (
    TENANT_ADMIN_DESCRIPTION,
    TENANT_ADMIN_PERMISSIONS,
    TENANT_ADMIN_ROLE,
    Role,
    parse_permission,
)

logger = structlog.get_logger()


class UserService:
    """Service for user, role and role-assignment management."""

    def __init__(
        self,
        users: UserRepository,
        credentials: CredentialRepository,
        roles: RoleRepository,
        publisher: EventPublisher,
        transactions: TransactionManager,
    ) -> None:
        """Initialize the user service.

        Args:
            users: User directory.
            credentials: Credential store, cleared when a user is deleted.
            roles: Role repository.
            publisher: Lifecycle event publisher.
            transactions: Groups multi-step writes.
        """
        self._users = users
        self._credentials = credentials
        self._roles = roles
        self._publisher = publisher
        self._transactions = transactions

    async def create_initial_admin(self, tenant_id: UUID, email: str, full_name: str) -> User:
        """Create the first administrator of a tenant.

        Creates the user in ``PENDING_SETUP``, the "Tenant Admin" role and
        the assignment, then emits user-created with ``is_initial_admin``.

        Safe to call again for the same tenant and email: the existing user
        and role are reused and the event is emitted again as long as the
        admin has not finished setup yet.

        Returns:
            The admin user.
        """
        user = await self._users.get_user_by_email(email, tenant_id)
        if user is None:
            try:
                async with self._transactions.transaction():
                    user = await self._users.create_user(
                        tenant_id, email, full_name, UserStatus.PENDING_SETUP
                    )
                    role = await self._ensure_admin_role(tenant_id)
                    await self._roles.assign_role(user.id, tenant_id, role.id)
            except AlreadyExistsError:
                # Lost a race with a concurrent delivery of the same event
                user = await self._users.get_user_by_email(email, tenant_id)
                if user is None:
                    raise
                logger.info("initial_admin_created_concurrently", user_id=str(user.id))
            else:
                logger.info(
                    "initial_admin_created",
                    user_id=str(user.id),
                    tenant_id=str(tenant_id),
                    role_id=str(role.id),
                )
        else:
            logger.info("initial_admin_exists", user_id=str(user.id), tenant_id=str(tenant_id))
            async with self._transactions.transaction():
                role = await self._ensure_admin_role(tenant_id)
                await self._roles.assign_role(user.id, tenant_id, role.id)

        if user.status != UserStatus.PENDING_SETUP:
            logger.info(
                "initial_admin_already_set_up",
                user_id=str(user.id),
                status=user.status.value,
            )
            return user

        await publish_all(
            self._publisher,
            UserCreatedEvent(
                user_id=user.id,
                tenant_id=tenant_id,
                email=user.email,
                is_initial_admin=True,
            ),
        )
        return user

    async def create_user(
        self,
        tenant_id: UUID,
        email: str,
        full_name: str,
        status: UserStatus = UserStatus.PENDING_SETUP,
    ) -> User:
        """Create a regular user.

        Raises:
            AlreadyExistsError: If the email is taken in the tenant.
        """
        user = await self._users.create_user(tenant_id, email, full_name, status)
        logger.info("user_created", user_id=str(user.id), tenant_id=str(tenant_id))
        await publish_all(
            self._publisher,
            UserCreatedEvent(user_id=user.id, tenant_id=tenant_id, email=user.email),
        )
        return user

    async def invite_user(
        self,
        tenant_id: UUID,
        email: str,
        full_name: str,
        role_ids: list[UUID] | None = None,
    ) -> User:
        """Create a ``PENDING_INVITE`` user and assign roles.

        Raises:
            AlreadyExistsError: If the email is taken in the tenant.
            NotFoundError: If a role does not exist in the tenant.
        """
        role_ids = role_ids or []
        async with self._transactions.transaction():
            user = await self._users.create_user(
                tenant_id, email, full_name, UserStatus.PENDING_INVITE
            )
            for role_id in role_ids:
                await self._get_tenant_role(role_id, tenant_id)
                await self._roles.assign_role(user.id, tenant_id, role_id)

        logger.info(
            "user_invited",
            user_id=str(user.id),
            tenant_id=str(tenant_id),
            role_count=len(role_ids),
        )
        await publish_all(
            self._publisher,
            UserInvitedEvent(
                user_id=user.id,
                tenant_id=tenant_id,
                email=user.email,
                full_name=user.full_name,
            ),
        )
        return user

    async def get_user(self, user_id: UUID, tenant_id: UUID | None = None) -> User:
        """Get a user, optionally requiring it to belong to ``tenant_id``.

        Raises:
            NotFoundError: If the user does not exist (in the tenant).
        """
        user = await self._users.get_user_by_id(user_id)
        if user is None or (tenant_id is not None and user.tenant_id != tenant_id):
            raise NotFoundError("User not found")
        return user

    async def list_users(self, tenant_id: UUID, limit: int = 50, offset: int = 0) -> list[User]:
        """List a tenant's users."""
        if limit < 1 or offset < 0:
            raise InvalidArgumentError("limit must be positive and offset non-negative")
        return await self._users.list_users(tenant_id, limit=limit, offset=offset)

    async def update_user(
        self,
        user_id: UUID,
        tenant_id: UUID | None = None,
        full_name: str | None = None,
        email: str | None = None,
    ) -> User:
        """Update a user's name or email.

        Changing the email clears the verified flag.

        Raises:
            NotFoundError: If the user does not exist (in the tenant).
            AlreadyExistsError: If the new email is taken in the tenant.
        """
        current = await self.get_user(user_id, tenant_id)
        email_changed = email is not None and email.lower() != current.email.lower()

        user = await self._users.update_user(
            user_id,
            full_name=full_name,
            email=email,
            email_verified=False if email_changed else None,
        )
        if user is None:
            raise NotFoundError("User not found")

        logger.info("user_updated", user_id=str(user_id), email_changed=email_changed)
        await publish_all(
            self._publisher,
            UserUpdatedEvent(user_id=user.id, tenant_id=user.tenant_id),
        )
        return user

    async def delete_user(self, user_id: UUID, tenant_id: UUID | None = None) -> None:
        """Delete a user with its credential, tokens and role assignments.

        Raises:
            NotFoundError: If the user does not exist (in the tenant).
        """
        user = await self.get_user(user_id, tenant_id)

        async with self._transactions.transaction():
            tokens = await self._credentials.delete_user_tokens(user_id)
            await self._credentials.delete_credential(user_id)
            if not await self._users.delete_user(user_id):
                raise NotFoundError("User not found")

        logger.info("user_deleted", user_id=str(user_id), tokens_revoked=tokens)
        await publish_all(
            self._publisher,
            UserDeletedEvent(user_id=user.id, tenant_id=user.tenant_id),
        )

    async def suspend_user(
        self,
        user_id: UUID,
        changed_by: str = SYSTEM_ACTOR,
        reason: str = "",
        tenant_id: UUID | None = None,
    ) -> User:
        """Administratively disable a user.

        Outstanding one-time tokens are revoked. Issued session credentials
        stay valid until they expire.

        Raises:
            NotFoundError: If the user does not exist (in the tenant).
        """
        user = await self.get_user(user_id, tenant_id)
        if user.status == UserStatus.SUSPENDED:
            return user

        async with self._transactions.transaction():
            updated = await self._users.update_user_status(user_id, UserStatus.SUSPENDED)
            if updated is None:
                raise NotFoundError("User not found")
            await self._credentials.delete_user_tokens(user_id)

        logger.info("user_suspended", user_id=str(user_id), changed_by=changed_by)
        await publish_all(
            self._publisher,
            UserStatusChangedEvent(
                user_id=user.id,
                tenant_id=user.tenant_id,
                old_status=user.status.value,
                new_status=UserStatus.SUSPENDED.value,
                changed_by=changed_by,
                reason=reason,
            ),
        )
        return updated

    async def assign_role(self, user_id: UUID, role_id: UUID, tenant_id: UUID | None = None) -> None:
        """Assign a role to a user of the same tenant.

        Raises:
            NotFoundError: If the user or role does not exist in the tenant.
        """
        user = await self.get_user(user_id, tenant_id)
        await self._get_tenant_role(role_id, user.tenant_id)

        await self._roles.assign_role(user.id, user.tenant_id, role_id)
        logger.info("role_assigned", user_id=str(user_id), role_id=str(role_id))
        await publish_all(
            self._publisher,
            RoleAssignedEvent(user_id=user.id, tenant_id=user.tenant_id, role_id=role_id),
        )

    async def revoke_role(self, user_id: UUID, role_id: UUID, tenant_id: UUID | None = None) -> None:
        """Remove a role assignment.

        Raises:
            NotFoundError: If the user does not have the role.
        """
        user = await self.get_user(user_id, tenant_id)
        if not await self._roles.revoke_role(user.id, role_id):
            raise NotFoundError("Role assignment not found")

        logger.info("role_revoked", user_id=str(user_id), role_id=str(role_id))
        await publish_all(
            self._publisher,
            RoleRevokedEvent(user_id=user.id, tenant_id=user.tenant_id, role_id=role_id),
        )

    async def list_user_roles(self, user_id: UUID, tenant_id: UUID | None = None) -> list[Role]:
        """List the roles assigned to a user."""
        user = await self.get_user(user_id, tenant_id)
        return await self._roles.list_user_roles(user.id)

    async def create_role(
        self,
        tenant_id: UUID,
        name: str,
        permissions: list[str],
        description: str | None = None,
    ) -> Role:
        """Create a tenant role.

        Raises:
            InvalidArgumentError: If a permission is not ``resource:action``.
            AlreadyExistsError: If the name is taken in the tenant.
        """
        for permission in permissions:
            parse_permission(permission)

        role = await self._roles.create_role(
            tenant_id, name, sorted(set(permissions)), description=description
        )
        logger.info("role_created", role_id=str(role.id), tenant_id=str(tenant_id), name=name)
        return role

    async def list_roles(self, tenant_id: UUID) -> list[Role]:
        """List a tenant's roles."""
        return await self._roles.list_roles(tenant_id)

    async def delete_role(self, role_id: UUID, tenant_id: UUID) -> None:
        """Delete a tenant role together with its assignments.

        Raises:
            NotFoundError: If the role does not exist in the tenant.
            InvalidArgumentError: If the role is the Tenant Admin role.
        """
        role = await self._get_tenant_role(role_id, tenant_id)
        if role.name == TENANT_ADMIN_ROLE:
            raise InvalidArgumentError(f"The {TENANT_ADMIN_ROLE} role cannot be deleted")

        if not await self._roles.delete_role(role.id):
            raise NotFoundError(f"Role not found: {role_id}")
        logger.info("role_deleted", role_id=str(role_id), tenant_id=str(tenant_id))

    async def _ensure_admin_role(self, tenant_id: UUID) -> Role:
        role = await self._roles.get_role_by_name(tenant_id, TENANT_ADMIN_ROLE)
        if role is not None:
            return role
        return await self._roles.create_role(
            tenant_id,
            TENANT_ADMIN_ROLE,
            list(TENANT_ADMIN_PERMISSIONS),
            description=TENANT_ADMIN_DESCRIPTION,
        )

    async def _get_tenant_role(self, role_id: UUID, tenant_id: UUID) -> Role:
        role = await self._roles.get_role(role_id)
        if role is None or role.tenant_id != tenant_id:
            raise NotFoundError(f"Role not found: {role_id}")
        return role
