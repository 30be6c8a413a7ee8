"""Core domain - business logic that depends only on protocols."""

from .exceptions import (
    AlreadyExistsError,
    IdplaneError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    UnauthenticatedError,
)
from .interfaces import EventPublisher, Notifier, PolicyDecision, PolicyEngine, TransactionManager

__all__ = [
    # Exceptions
    "IdplaneError",
    "NotFoundError",
    "InvalidArgumentError",
    "UnauthenticatedError",
    "PermissionDeniedError",
    "AlreadyExistsError",
    "InternalError",
    # Interfaces
    "EventPublisher",
    "Notifier",
    "PolicyDecision",
    "PolicyEngine",
    "TransactionManager",
]
