"""Dependency injection and application lifespan management."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import Request

from idplane.config import get_settings
from idplane.core.auth import AuthService, SessionIssuer
from idplane.core.rbac import PermissionEvaluator
from idplane.core.users import UserService
from idplane.entrypoints.wiring import Container, build_container
from idplane.log_config import configure_logging

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan - setup and teardown.

    A container already placed on ``app.state`` (tests) is used as is and
    left open; otherwise one is built from the environment.
    """
    preset: Container | None = getattr(app.state, "container", None)
    if preset is not None:
        yield
        return

    settings = get_settings()
    configure_logging(settings.log_level, json=settings.log_json)

    container = await build_container(settings)
    app.state.container = container
    logger.info("api_started", storage=settings.storage)

    try:
        yield
    finally:
        await container.close()
        logger.info("api_stopped")


def get_container(request: Request) -> Container:
    """Get the service container from app state."""
    container: Container = request.app.state.container
    return container


def get_auth_service(request: Request) -> AuthService:
    """Get the auth service."""
    return get_container(request).auth


def get_user_service(request: Request) -> UserService:
    """Get the user service."""
    return get_container(request).users


def get_evaluator(request: Request) -> PermissionEvaluator:
    """Get the permission evaluator."""
    return get_container(request).evaluator


def get_sessions(request: Request) -> SessionIssuer:
    """Get the session issuer."""
    return get_container(request).sessions
