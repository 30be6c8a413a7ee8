"""FastAPI application definition."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from idplane.config import get_settings

from .deps import lifespan
from .errors import register_error_handlers
from .routes import api_router


def create_app() -> FastAPI:
    """Build the FastAPI application.

    Services are attached in the lifespan, so building the app does no I/O.
    """
    settings = get_settings()
    application = FastAPI(
        title="idplane",
        description="Identity and access control plane",
        version="0.1.0",
        lifespan=lifespan,
        redirect_slashes=False,  # a redirect would drop the Authorization header
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )

    register_error_handlers(application)
    application.include_router(api_router, prefix="/api/v1")

    @application.get("/health")
    async def health_check() -> dict[str, str]:
        """Liveness check; does not touch storage."""
        return {"status": "healthy"}

    return application


app = create_app()
