"""Fire-and-forget publication of follow-up events."""

import structlog

from idplane.core.events import BrokerEvent
from idplane.core.exceptions import EventPublishError
from idplane.core.interfaces import EventPublisher

logger = structlog.get_logger()


async def publish_all(publisher: EventPublisher, *events: BrokerEvent) -> None:
    """Publish events that follow an already committed state change.

    Every event is attempted even if an earlier one fails. The state
    change is never reverted; the first failure is re-raised so the caller
    of the triggering operation learns about it.

    Raises:
        EventPublishError: If any event could not be published.
    """
    first_error: EventPublishError | None = None
    for event in events:
        try:
            await publisher.publish(event)
        except EventPublishError as e:
            logger.error(
                "event_publish_failed",
                event_name=type(event).__name__,
                key=event.partition_key,
                error=str(e),
            )
            if first_error is None:
                first_error = e
    if first_error is not None:
        raise first_error
