"""Authorization routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from idplane.core.rbac import PermissionEvaluator
from idplane.core.users import UserService
from idplane.entrypoints.api.deps import get_evaluator, get_user_service
from idplane.entrypoints.api.middleware.jwt_auth import AuthContext

router = APIRouter(tags=["authz"])


class CheckAccessRequest(BaseModel):
    """Access check body."""

    action: str = Field(..., min_length=1)
    resource: str = Field(..., min_length=1)


class CheckAccessResponse(BaseModel):
    """Access decision."""

    allowed: bool
    reason: str


class PermissionsResponse(BaseModel):
    """Effective permissions of a user."""

    user_id: str
    permissions: list[str]


@router.post("/authz/check", response_model=CheckAccessResponse)
async def check_access(
    body: CheckAccessRequest,
    auth: AuthContext,
    evaluator: Annotated[PermissionEvaluator, Depends(get_evaluator)],
) -> CheckAccessResponse:
    """Decide whether the caller may perform ``action`` on ``resource``."""
    decision = await evaluator.check_access(auth.token, body.action, body.resource)
    return CheckAccessResponse(allowed=decision.allowed, reason=decision.reason)


@router.get("/users/{user_id}/permissions", response_model=PermissionsResponse)
async def get_user_permissions(
    user_id: UUID,
    auth: AuthContext,
    evaluator: Annotated[PermissionEvaluator, Depends(get_evaluator)],
    users: Annotated[UserService, Depends(get_user_service)],
) -> PermissionsResponse:
    """List a user's permissions.

    Callers may always read their own; reading another user's needs
    ``users:read``.
    """
    if user_id != auth.user_uuid and not await evaluator.has_permission(
        auth.user_uuid, "users:read"
    ):
        raise HTTPException(status_code=403, detail="Permission 'users:read' required")

    await users.get_user(user_id, auth.tenant_uuid)
    permissions = await evaluator.get_user_permissions(user_id)
    return PermissionsResponse(user_id=str(user_id), permissions=permissions)
