"""User and role management routes.

Every route is scoped to the caller's tenant; users and roles of other
tenants are reported as not found.
"""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr, Field

from idplane.core.auth.types import User
from idplane.core.rbac.types import Role
from idplane.core.users import UserService
from idplane.entrypoints.api.deps import get_user_service
from idplane.entrypoints.api.middleware.jwt_auth import (
    RequireRolesCreate,
    RequireRolesDelete,
    RequireRolesRead,
    RequireUsersCreate,
    RequireUsersDelete,
    RequireUsersRead,
    RequireUsersUpdate,
)

router = APIRouter(tags=["users"])


class UserResponse(BaseModel):
    """Public view of a user."""

    id: str
    tenant_id: str
    email: str
    full_name: str
    status: str
    email_verified: bool
    last_login_at: datetime | None = None
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Build the response from a domain user."""
        return cls(
            id=str(user.id),
            tenant_id=str(user.tenant_id),
            email=user.email,
            full_name=user.full_name,
            status=user.status.value,
            email_verified=user.email_verified,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


class UserListResponse(BaseModel):
    """A page of users."""

    users: list[UserResponse]
    limit: int
    offset: int


class InviteUserRequest(BaseModel):
    """Invite user request body."""

    email: EmailStr
    full_name: str = Field(..., min_length=1)
    role_ids: list[UUID] = Field(default_factory=list)


class UpdateUserRequest(BaseModel):
    """Update user request body."""

    full_name: str | None = Field(None, min_length=1)
    email: EmailStr | None = None


class SuspendUserRequest(BaseModel):
    """Suspend user request body."""

    reason: str = ""


class AssignRoleRequest(BaseModel):
    """Role assignment body."""

    role_id: UUID


class CreateRoleRequest(BaseModel):
    """Create role request body."""

    name: str = Field(..., min_length=1)
    permissions: list[str] = Field(default_factory=list)
    description: str | None = None


class RoleResponse(BaseModel):
    """Public view of a role."""

    id: str
    name: str
    description: str | None = None
    permissions: list[str]

    @classmethod
    def from_role(cls, role: Role) -> "RoleResponse":
        """Build the response from a domain role."""
        return cls(
            id=str(role.id),
            name=role.name,
            description=role.description,
            permissions=role.permissions,
        )


@router.post("/users", response_model=UserResponse, status_code=201)
async def invite_user(
    body: InviteUserRequest,
    auth: RequireUsersCreate,
    service: Annotated[UserService, Depends(get_user_service)],
) -> UserResponse:
    """Invite a user into the caller's tenant.

    The invitation email is sent asynchronously by the onboarding worker.
    """
    user = await service.invite_user(auth.tenant_uuid, body.email, body.full_name, body.role_ids)
    return UserResponse.from_user(user)


@router.get("/users", response_model=UserListResponse)
async def list_users(
    auth: RequireUsersRead,
    service: Annotated[UserService, Depends(get_user_service)],
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> UserListResponse:
    """List the users of the caller's tenant."""
    users = await service.list_users(auth.tenant_uuid, limit=limit, offset=offset)
    return UserListResponse(
        users=[UserResponse.from_user(u) for u in users],
        limit=limit,
        offset=offset,
    )


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UUID,
    auth: RequireUsersRead,
    service: Annotated[UserService, Depends(get_user_service)],
) -> UserResponse:
    """Get one user."""
    user = await service.get_user(user_id, auth.tenant_uuid)
    return UserResponse.from_user(user)


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: UUID,
    body: UpdateUserRequest,
    auth: RequireUsersUpdate,
    service: Annotated[UserService, Depends(get_user_service)],
) -> UserResponse:
    """Update a user's name or email."""
    user = await service.update_user(
        user_id,
        auth.tenant_uuid,
        full_name=body.full_name,
        email=body.email,
    )
    return UserResponse.from_user(user)


@router.delete("/users/{user_id}", status_code=204)
async def delete_user(
    user_id: UUID,
    auth: RequireUsersDelete,
    service: Annotated[UserService, Depends(get_user_service)],
) -> None:
    """Delete a user."""
    await service.delete_user(user_id, auth.tenant_uuid)


@router.post("/users/{user_id}/suspend", response_model=UserResponse)
async def suspend_user(
    user_id: UUID,
    body: SuspendUserRequest,
    auth: RequireUsersUpdate,
    service: Annotated[UserService, Depends(get_user_service)],
) -> UserResponse:
    """Suspend a user."""
    user = await service.suspend_user(
        user_id,
        changed_by=auth.user_id,
        reason=body.reason,
        tenant_id=auth.tenant_uuid,
    )
    return UserResponse.from_user(user)


@router.get("/users/{user_id}/roles", response_model=list[RoleResponse])
async def list_user_roles(
    user_id: UUID,
    auth: RequireUsersRead,
    service: Annotated[UserService, Depends(get_user_service)],
) -> list[RoleResponse]:
    """List a user's roles."""
    roles = await service.list_user_roles(user_id, auth.tenant_uuid)
    return [RoleResponse.from_role(r) for r in roles]


@router.post("/users/{user_id}/roles", status_code=204)
async def assign_role(
    user_id: UUID,
    body: AssignRoleRequest,
    auth: RequireUsersUpdate,
    service: Annotated[UserService, Depends(get_user_service)],
) -> None:
    """Assign a role to a user."""
    await service.assign_role(user_id, body.role_id, auth.tenant_uuid)


@router.delete("/users/{user_id}/roles/{role_id}", status_code=204)
async def revoke_role(
    user_id: UUID,
    role_id: UUID,
    auth: RequireUsersUpdate,
    service: Annotated[UserService, Depends(get_user_service)],
) -> None:
    """Remove a role from a user."""
    await service.revoke_role(user_id, role_id, auth.tenant_uuid)


@router.post("/roles", response_model=RoleResponse, status_code=201)
async def create_role(
    body: CreateRoleRequest,
    auth: RequireRolesCreate,
    service: Annotated[UserService, Depends(get_user_service)],
) -> RoleResponse:
    """Create a role in the caller's tenant."""
    role = await service.create_role(
        auth.tenant_uuid, body.name, body.permissions, description=body.description
    )
    return RoleResponse.from_role(role)


@router.get("/roles", response_model=list[RoleResponse])
async def list_roles(
    auth: RequireRolesRead,
    service: Annotated[UserService, Depends(get_user_service)],
) -> list[RoleResponse]:
    """List the roles of the caller's tenant."""
    roles = await service.list_roles(auth.tenant_uuid)
    return [RoleResponse.from_role(r) for r in roles]


@router.delete("/roles/{role_id}", status_code=204)
async def delete_role(
    role_id: UUID,
    auth: RequireRolesDelete,
    service: Annotated[UserService, Depends(get_user_service)],
) -> None:
    """Delete a role; users holding it lose its permissions."""
    await service.delete_role(role_id, auth.tenant_uuid)
