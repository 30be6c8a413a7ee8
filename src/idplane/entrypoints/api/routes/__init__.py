"""API route modules."""

from fastapi import APIRouter

from idplane.entrypoints.api.routes.auth import router as auth_router
from idplane.entrypoints.api.routes.authz import router as authz_router
from idplane.entrypoints.api.routes.users import router as users_router

api_router = APIRouter()

api_router.include_router(auth_router)
api_router.include_router(users_router)
api_router.include_router(authz_router)

__all__ = ["api_router"]
