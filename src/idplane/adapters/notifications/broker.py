"""Email delivery through the external notification service."""

import structlog

from idplane.core.events import EmailNotification
from idplane.core.exceptions import EventPublishError, NotificationError
from idplane.core.interfaces import EventPublisher

logger = structlog.get_logger()


class BrokerEmailNotifier:
    """Hands emails to the notification service as broker events.

    Delivery to the recipient is the notification service's job; this
    notifier only guarantees the request reached the broker.
    """

    def __init__(self, publisher: EventPublisher) -> None:
        """Initialize the notifier.

        Args:
            publisher: Publisher that routes EmailNotification to its topic.
        """
        self._publisher = publisher

    async def send_email(self, to: str, subject: str, body: str) -> None:
        """Queue an email for the notification service.

        Raises:
            NotificationError: If the request could not be published.
        """
        try:
            await self._publisher.publish(EmailNotification(to=to, subject=subject, body=body))
        except EventPublishError as e:
            raise NotificationError(f"Failed to queue email: {e}") from e
        logger.info("email_queued", subject=subject)
