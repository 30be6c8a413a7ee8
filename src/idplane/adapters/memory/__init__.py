"""In-memory adapters for tests and local development."""

from idplane.adapters.memory.messaging import InMemoryEventPublisher, RecordingNotifier
from idplane.adapters.memory.store import (
    MemoryCredentialRepository,
    MemoryRoleRepository,
    MemoryStore,
    MemoryUserRepository,
)

__all__ = [
    "InMemoryEventPublisher",
    "MemoryCredentialRepository",
    "MemoryRoleRepository",
    "MemoryStore",
    "MemoryUserRepository",
    "RecordingNotifier",
]
