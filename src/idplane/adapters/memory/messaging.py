"""In-memory event publisher and notifier."""

import structlog

from idplane.core.events import BrokerEvent
from idplane.core.exceptions import EventPublishError, NotificationError

logger = structlog.get_logger()


class InMemoryEventPublisher:
    """Collects published events in a list.

    Set ``fail`` to make every publish raise, to exercise error paths.
    """

    def __init__(self) -> None:
        self.events: list[BrokerEvent] = []
        self.fail = False

    async def publish(self, event: BrokerEvent) -> None:
        if self.fail:
            raise EventPublishError(f"Broker unavailable for {type(event).__name__}")
        self.events.append(event)
        logger.debug("event_recorded", event_name=type(event).__name__, key=event.partition_key)

    def of_type(self, event_type: type[BrokerEvent]) -> list[BrokerEvent]:
        """Recorded events of one class."""
        return [e for e in self.events if isinstance(e, event_type)]


class RecordingNotifier:
    """Keeps sent emails as ``(to, subject, body)`` tuples."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    async def send_email(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise NotificationError(f"Could not deliver email to {to}")
        self.sent.append((to, subject, body))
