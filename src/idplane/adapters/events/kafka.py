"""Kafka producer and consumer built on confluent-kafka.

The confluent-kafka client is blocking, so every call into it runs in a
worker thread via ``asyncio.to_thread``.
"""

import asyncio
import json
import threading
from collections.abc import Awaitable, Callable

import structlog
from confluent_kafka import Consumer, KafkaError, KafkaException, Message, Producer, TopicPartition

from idplane.core.events import (
    BrokerEvent,
    EmailNotification,
    TenantProvisionedEvent,
    TopicNames,
    UserEvent,
)
from idplane.core.exceptions import EventPublishError

logger = structlog.get_logger()

MessageHandler = Callable[[str, bytes], Awaitable[object]]


def topic_for(event: BrokerEvent, topics: TopicNames) -> str:
    """Topic an event is published to."""
    if isinstance(event, UserEvent):
        return topics.user_lifecycle
    if isinstance(event, EmailNotification):
        return topics.notification_email
    if isinstance(event, TenantProvisionedEvent):
        return topics.tenant_provisioned
    raise EventPublishError(f"No topic for event {type(event).__name__}")


def serialize_event(event: BrokerEvent) -> bytes:
    """JSON-encode an event."""
    return json.dumps(event.model_dump(mode="json")).encode("utf-8")


class KafkaEventPublisher:
    """Publishes events and waits for the broker to acknowledge them.

    Each event is keyed by ``event.partition_key`` so all events of one
    user land on the same partition in order.
    """

    def __init__(
        self,
        brokers: str,
        client_id: str = "idplane",
        delivery_timeout: float = 10.0,
        topics: TopicNames | None = None,
        producer: Producer | None = None,
    ) -> None:
        """Initialize the publisher.

        Args:
            brokers: Comma-separated bootstrap servers.
            client_id: Client name shown in broker logs.
            delivery_timeout: Seconds to wait for the acknowledgement.
            topics: Topic names to publish to; the defaults if omitted.
            producer: Pre-built producer (tests).
        """
        self._producer = producer or Producer(
            {
                "bootstrap.servers": brokers,
                "client.id": client_id,
                "acks": "all",
                "enable.idempotence": True,
            }
        )
        self._delivery_timeout = delivery_timeout
        self._topics = topics or TopicNames()
        self._lock = threading.Lock()

    async def publish(self, event: BrokerEvent) -> None:
        """Publish one event.

        Raises:
            EventPublishError: If the broker rejected or never acknowledged it.
        """
        topic = topic_for(event, self._topics)
        await asyncio.to_thread(self._produce, topic, event.partition_key, serialize_event(event))
        logger.info(
            "event_published",
            topic=topic,
            event_name=type(event).__name__,
            key=event.partition_key,
        )

    def _produce(self, topic: str, key: str, value: bytes) -> None:
        errors: list[KafkaError] = []

        def on_delivery(err: KafkaError | None, msg: Message) -> None:
            if err is not None:
                errors.append(err)

        with self._lock:
            try:
                self._producer.produce(
                    topic,
                    key=key.encode("utf-8"),
                    value=value,
                    on_delivery=on_delivery,
                )
                pending = self._producer.flush(self._delivery_timeout)
            except (BufferError, KafkaException) as e:
                raise EventPublishError(f"Failed to publish to {topic}: {e}") from e

        if errors:
            raise EventPublishError(f"Delivery to {topic} failed: {errors[0]}")
        if pending:
            raise EventPublishError(f"Delivery to {topic} timed out")

    async def close(self) -> None:
        """Flush outstanding messages."""
        await asyncio.to_thread(self._producer.flush, self._delivery_timeout)
        logger.info("kafka_producer_closed")


class KafkaEventConsumer:
    """Consumes one topic and hands each message to an async handler.

    Offsets are committed only after the handler returns. When the handler
    raises, the consumer seeks back to the failed message and retries it
    after a pause, so nothing behind it is committed first.
    """

    def __init__(
        self,
        brokers: str,
        group_id: str,
        topic: str,
        handler: MessageHandler,
        poll_timeout: float = 1.0,
        retry_backoff: float = 5.0,
        consumer: Consumer | None = None,
    ) -> None:
        """Initialize the consumer.

        Args:
            brokers: Comma-separated bootstrap servers.
            group_id: Consumer group.
            topic: Topic to subscribe to.
            handler: Called with ``(topic, value)`` for each message.
            poll_timeout: Seconds each poll blocks.
            retry_backoff: Seconds to wait before retrying a failed message.
            consumer: Pre-built consumer (tests).
        """
        self._consumer = consumer or Consumer(
            {
                "bootstrap.servers": brokers,
                "group.id": group_id,
                "auto.offset.reset": "earliest",
                "enable.auto.commit": False,
            }
        )
        self._topic = topic
        self._group_id = group_id
        self._handler = handler
        self._poll_timeout = poll_timeout
        self._retry_backoff = retry_backoff
        self._running = False
        self._subscribed = False

    @property
    def topic(self) -> str:
        return self._topic

    async def run(self) -> None:
        """Consume until ``stop()`` is called."""
        if not self._subscribed:
            self._consumer.subscribe([self._topic])
            self._subscribed = True

        self._running = True
        logger.info("kafka_consumer_started", topic=self._topic, group_id=self._group_id)
        while self._running:
            await self.poll_once()
        logger.info("kafka_consumer_stopped", topic=self._topic)

    async def poll_once(self) -> bool:
        """Poll and process at most one message.

        Returns:
            True if a message was processed and committed.
        """
        try:
            msg = await asyncio.to_thread(self._consumer.poll, self._poll_timeout)
        except KafkaException as e:
            logger.error("kafka_poll_failed", topic=self._topic, error=str(e))
            return False

        if msg is None:
            return False

        error = msg.error()
        if error is not None:
            if error.code() != KafkaError._PARTITION_EOF:
                logger.error("kafka_consumer_error", topic=self._topic, error=str(error))
            return False

        log = logger.bind(topic=msg.topic(), partition=msg.partition(), offset=msg.offset())
        log.debug("kafka_message_received")

        try:
            await self._handler(msg.topic(), msg.value() or b"")
        except Exception as e:
            log.error("kafka_message_handler_failed", error=str(e), exc_info=True)
            await self._rewind(msg)
            return False

        try:
            await asyncio.to_thread(self._consumer.commit, message=msg, asynchronous=False)
        except KafkaException as e:
            # The message will be redelivered; handlers are idempotent
            log.error("kafka_commit_failed", error=str(e))
            return False

        log.debug("kafka_message_committed")
        return True

    async def _rewind(self, msg: Message) -> None:
        partition = TopicPartition(msg.topic(), msg.partition(), msg.offset())
        try:
            await asyncio.to_thread(self._consumer.seek, partition)
        except KafkaException as e:
            logger.error("kafka_seek_failed", topic=self._topic, error=str(e))
        await asyncio.sleep(self._retry_backoff)

    def stop(self) -> None:
        """Ask the run loop to exit after the current poll."""
        self._running = False

    async def close(self) -> None:
        """Close the underlying consumer."""
        self.stop()
        await asyncio.to_thread(self._consumer.close)
        logger.info("kafka_consumer_closed", topic=self._topic)


