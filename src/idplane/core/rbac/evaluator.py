"""Permission evaluation service."""

from uuid import UUID

import structlog

from idplane.core.auth.jwt import SessionIssuer
from idplane.core.auth.types import SessionClaims
from idplane.core.exceptions import InvalidArgumentError, PolicyEngineError
from idplane.core.interfaces import PolicyEngine
from idplane.core.rbac.repository import RoleRepository
from idplane.core.rbac.types import WILDCARD, AccessDecision, Role, parse_permission

logger = structlog.get_logger()


def collect_permissions(roles: list[Role]) -> set[str]:
    """Union the permission strings of every role."""
    permissions: set[str] = set()
    for role in roles:
        permissions.update(role.permissions)
    return permissions


def match_permission(permissions: set[str], action: str, resource: str) -> AccessDecision:
    """Evaluate a flat ``resource:action`` permission set.

    Checks, in order: exact match, wildcard resource (``resource:*``),
    wildcard action (``*:action``) and full wildcard (``*:*``). Any one
    positive match grants access; there are no negative permissions.
    """
    if f"{resource}:{action}" in permissions:
        return AccessDecision(True, "Access granted")
    if f"{resource}:{WILDCARD}" in permissions:
        return AccessDecision(True, "Access granted (wildcard resource)")
    if f"{WILDCARD}:{action}" in permissions:
        return AccessDecision(True, "Access granted (wildcard action)")
    if f"{WILDCARD}:{WILDCARD}" in permissions:
        return AccessDecision(True, "Access granted (super admin)")
    return AccessDecision(False, "Access denied")


class PermissionEvaluator:
    """Decides allow/deny for an (action, resource) pair.

    Permissions come from the union of the user's roles. When a policy
    engine is configured its verdict is authoritative; local evaluation
    is only used when the engine call itself fails.
    """

    def __init__(
        self,
        roles: RoleRepository,
        sessions: SessionIssuer,
        policy_engine: PolicyEngine | None = None,
    ) -> None:
        """Initialize the evaluator.

        Args:
            roles: Role repository.
            sessions: Session issuer used to validate access tokens.
            policy_engine: Optional external policy engine.
        """
        self._roles = roles
        self._sessions = sessions
        self._policy_engine = policy_engine

    async def check_access(self, session_token: str, action: str, resource: str) -> AccessDecision:
        """Check if the token's user may perform ``action`` on ``resource``.

        Raises:
            TokenInvalidError: If the session token is invalid or expired.
            InvalidArgumentError: If the token subject is not a user ID.
        """
        claims = self._sessions.validate(session_token)
        user_id = _parse_user_id(claims.user_id)

        roles = await self._roles.list_user_roles(user_id)
        permissions = collect_permissions(roles)

        if self._policy_engine is not None:
            try:
                decision = await self._policy_engine.evaluate(
                    _policy_input(claims, permissions, action, resource)
                )
            except PolicyEngineError as e:
                logger.warning(
                    "policy_engine_unavailable_falling_back",
                    user_id=claims.user_id,
                    action=action,
                    resource=resource,
                    error=str(e),
                )
            else:
                reason = decision.reason or (
                    "Access granted by policy" if decision.allow else "Access denied by policy"
                )
                return AccessDecision(decision.allow, reason)

        return match_permission(permissions, action, resource)

    async def get_user_permissions(self, user_id: UUID) -> list[str]:
        """Get the sorted, de-duplicated permissions of a user."""
        roles = await self._roles.list_user_roles(user_id)
        return sorted(collect_permissions(roles))

    async def has_permission(self, user_id: UUID, permission: str) -> bool:
        """Check a single ``resource:action`` permission for a user.

        Raises:
            InvalidArgumentError: If ``permission`` is malformed.
        """
        resource, action = parse_permission(permission)
        roles = await self._roles.list_user_roles(user_id)
        return match_permission(collect_permissions(roles), action, resource).allowed


def _parse_user_id(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise InvalidArgumentError("Invalid user ID") from None


def _policy_input(
    claims: SessionClaims,
    permissions: set[str],
    action: str,
    resource: str,
) -> dict[str, object]:
    return {
        "user": {
            "id": claims.user_id,
            "tenant_id": claims.tenant_id,
            "email": claims.email,
            "permissions": sorted(permissions),
        },
        "action": action,
        "resource": resource,
    }
