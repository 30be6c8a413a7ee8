"""Protocol definitions for the collaborators the core depends on.

The core domain only depends on these protocols, never on concrete
implementations. Adapters for PostgreSQL, Kafka, SMTP and OPA live in
``idplane.adapters``; in-memory implementations back the tests.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from idplane.core.events import BrokerEvent


@runtime_checkable
class EventPublisher(Protocol):
    """Interface for publishing events to the broker.

    Implementations route each event to its topic and key it by
    ``event.partition_key``.
    """

    async def publish(self, event: BrokerEvent) -> None:
        """Publish a single event.

        Raises:
            EventPublishError: If the broker did not accept the event.
        """
        ...


@runtime_checkable
class Notifier(Protocol):
    """Interface for delivering messages to users."""

    async def send_email(self, to: str, subject: str, body: str) -> None:
        """Deliver an email.

        Raises:
            NotificationError: If the message could not be handed off.
        """
        ...


@dataclass(frozen=True)
class PolicyDecision:
    """Verdict returned by an external policy engine."""

    allow: bool
    reason: str = ""


@runtime_checkable
class PolicyEngine(Protocol):
    """Interface for an external authorization policy engine."""

    async def evaluate(self, input: dict[str, Any]) -> PolicyDecision:  # noqa: A002
        """Evaluate a policy decision.

        Args:
            input: ``{"user": {...}, "action": str, "resource": str}``.

        Raises:
            PolicyEngineError: If no decision could be obtained.
        """
        ...


@runtime_checkable
class TransactionManager(Protocol):
    """Interface for grouping repository writes atomically."""

    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Open a transaction scope.

        Writes made through the repositories inside the scope commit
        together on normal exit and roll back if the block raises.
        """
        ...
