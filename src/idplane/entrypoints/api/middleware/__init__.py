"""API middleware."""

from idplane.entrypoints.api.middleware.jwt_auth import (
    AuthContext,
    JwtContext,
    require_permission,
    verify_jwt,
)

__all__ = ["AuthContext", "JwtContext", "require_permission", "verify_jwt"]
