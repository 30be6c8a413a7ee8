"""JWT authentication middleware."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Annotated, Any
from uuid import UUID

import structlog
from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from idplane.core.auth.jwt import SessionIssuer
from idplane.core.auth.types import TokenType
from idplane.core.exceptions import UnauthenticatedError
from idplane.core.rbac.evaluator import PermissionEvaluator
from idplane.core.rbac.types import parse_permission
from idplane.entrypoints.api.deps import get_evaluator, get_sessions

logger = structlog.get_logger()

# Use Bearer token authentication
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class JwtContext:
    """Context from a verified access token."""

    user_id: str
    tenant_id: str
    email: str
    token: str

    @property
    def user_uuid(self) -> UUID:
        """Get user ID as UUID."""
        return UUID(self.user_id)

    @property
    def tenant_uuid(self) -> UUID:
        """Get tenant ID as UUID."""
        return UUID(self.tenant_id)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def verify_jwt(
    request: Request,
    sessions: Annotated[SessionIssuer, Depends(get_sessions)],
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),  # noqa: B008
) -> JwtContext:
    """Verify the bearer access token and return the caller context.

    Refresh tokens are rejected here; they are only accepted by the
    refresh endpoint.

    Raises:
        HTTPException: 401 if the token is missing, invalid or not an
            access token.
    """
    if not credentials:
        raise _unauthorized("Missing authentication token")

    try:
        claims = sessions.validate(credentials.credentials)
    except UnauthenticatedError as e:
        logger.warning("jwt_validation_failed", error=str(e))
        raise _unauthorized(str(e)) from None

    if claims.token_type != TokenType.ACCESS:
        raise _unauthorized("Access token required")

    try:
        UUID(claims.user_id)
        UUID(claims.tenant_id)
    except ValueError:
        raise _unauthorized("Token is invalid or expired") from None

    context = JwtContext(
        user_id=claims.user_id,
        tenant_id=claims.tenant_id,
        email=claims.email,
        token=credentials.credentials,
    )

    # Store in request state for downstream use
    request.state.user = context

    logger.debug("jwt_verified", user_id=context.user_id, tenant_id=context.tenant_id)
    return context


def require_permission(permission: str) -> Callable[..., Any]:
    """Dependency to require a ``resource:action`` permission.

    Usage:
        @router.delete("/{id}")
        async def delete_item(
            auth: Annotated[JwtContext, Depends(require_permission("users:delete"))],
        ):
            ...
    """
    resource, action = parse_permission(permission)

    async def permission_checker(
        auth: Annotated[JwtContext, Depends(verify_jwt)],
        evaluator: Annotated[PermissionEvaluator, Depends(get_evaluator)],
    ) -> JwtContext:
        decision = await evaluator.check_access(auth.token, action, resource)
        if not decision.allowed:
            logger.info(
                "permission_denied",
                user_id=auth.user_id,
                permission=permission,
                reason=decision.reason,
            )
            raise HTTPException(
                status_code=403,
                detail=f"Permission '{permission}' required",
            )
        return auth

    return permission_checker


AuthContext = Annotated[JwtContext, Depends(verify_jwt)]

RequireUsersCreate = Annotated[JwtContext, Depends(require_permission("users:create"))]
RequireUsersRead = Annotated[JwtContext, Depends(require_permission("users:read"))]
RequireUsersUpdate = Annotated[JwtContext, Depends(require_permission("users:update"))]
RequireUsersDelete = Annotated[JwtContext, Depends(require_permission("users:delete"))]
RequireRolesCreate = Annotated[JwtContext, Depends(require_permission("roles:create"))]
RequireRolesRead = Annotated[JwtContext, Depends(require_permission("roles:read"))]
RequireRolesDelete = Annotated[JwtContext, Depends(require_permission("roles:delete"))]
