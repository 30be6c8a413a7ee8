"""Role-based access control."""

from idplane.core.rbac.evaluator import PermissionEvaluator, match_permission
from idplane.core.rbac.repository import RoleRepository
from idplane.core.rbac.types import AccessDecision, Role

__all__ = [
    "AccessDecision",
    "PermissionEvaluator",
    "Role",
    "RoleRepository",
    "match_permission",
]
