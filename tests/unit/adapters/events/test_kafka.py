"""Tests for the Kafka publisher and consumer."""

from __future__ import annotations

import json
import uuid
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from confluent_kafka import KafkaError, KafkaException

from idplane.adapters.events.kafka import (
    KafkaEventConsumer,
    KafkaEventPublisher,
    serialize_event,
    topic_for,
)
from idplane.core.events import (
    TOPIC_CREATE_INITIAL_ADMIN,
    TOPIC_NOTIFICATION_EMAIL,
    TOPIC_USER_LIFECYCLE,
    BrokerEvent,
    EmailNotification,
    TenantProvisionedEvent,
    TopicNames,
    UserCreatedEvent,
)
from idplane.core.exceptions import EventPublishError


@pytest.fixture
def created_event() -> UserCreatedEvent:
    """Return a user-created event."""
    return UserCreatedEvent(
        user_id=uuid.uuid4(), tenant_id=uuid.uuid4(), email="a@x.com", is_initial_admin=True
    )


class TestTopicRouting:
    """Tests for topic_for and serialize_event."""

    def test_topics(self, created_event: UserCreatedEvent) -> None:
        """Each event family has its topic."""
        defaults = TopicNames()

        assert topic_for(created_event, defaults) == TOPIC_USER_LIFECYCLE
        assert topic_for(EmailNotification(to="a", subject="s", body="b"), defaults) == (
            TOPIC_NOTIFICATION_EMAIL
        )
        provisioned = TenantProvisionedEvent(
            tenant_id=uuid.uuid4(), admin_email="a@x.com", admin_full_name="A"
        )
        assert topic_for(provisioned, defaults) == TOPIC_CREATE_INITIAL_ADMIN

    def test_custom_topic_names(self, created_event: UserCreatedEvent) -> None:
        """Configured names replace the defaults."""
        topics = TopicNames(user_lifecycle="prod.user.lifecycle", notification_email="prod.mail")

        assert topic_for(created_event, topics) == "prod.user.lifecycle"
        assert topic_for(EmailNotification(to="a", subject="s", body="b"), topics) == "prod.mail"

    def test_unroutable_event(self) -> None:
        """Events without a topic raise EventPublishError."""
        with pytest.raises(EventPublishError):
            topic_for(BrokerEvent(), TopicNames())

    def test_serialized_event_is_json(self, created_event: UserCreatedEvent) -> None:
        """Events are JSON with string UUIDs and the type tag."""
        payload = json.loads(serialize_event(created_event))

        assert payload["event_type"] == "user.created"
        assert payload["user_id"] == str(created_event.user_id)
        assert payload["is_initial_admin"] is True


class TestKafkaEventPublisher:
    """Tests for KafkaEventPublisher."""

    @pytest.fixture
    def producer(self) -> MagicMock:
        """Return a producer that acknowledges every message."""
        producer = MagicMock()

        def produce(topic: str, key: bytes, value: bytes, on_delivery: Any) -> None:
            on_delivery(None, MagicMock())

        producer.produce.side_effect = produce
        producer.flush.return_value = 0
        return producer

    async def test_publish_keys_by_partition_key(
        self, producer: MagicMock, created_event: UserCreatedEvent
    ) -> None:
        """Messages go to the event's topic keyed by its partition key."""
        publisher = KafkaEventPublisher("localhost:9092", producer=producer)

        await publisher.publish(created_event)

        args, kwargs = producer.produce.call_args
        assert args[0] == TOPIC_USER_LIFECYCLE
        assert kwargs["key"] == str(created_event.user_id).encode()
        assert json.loads(kwargs["value"])["email"] == "a@x.com"
        producer.flush.assert_called_once()

    async def test_publish_to_configured_topic(
        self, producer: MagicMock, created_event: UserCreatedEvent
    ) -> None:
        """Lifecycle events go to the configured lifecycle topic."""
        publisher = KafkaEventPublisher(
            "localhost:9092",
            topics=TopicNames(user_lifecycle="prod.user.lifecycle"),
            producer=producer,
        )

        await publisher.publish(created_event)

        assert producer.produce.call_args.args[0] == "prod.user.lifecycle"

    async def test_delivery_error(
        self, producer: MagicMock, created_event: UserCreatedEvent
    ) -> None:
        """A negative delivery report raises EventPublishError."""

        def produce(topic: str, key: bytes, value: bytes, on_delivery: Any) -> None:
            on_delivery(KafkaError(KafkaError._MSG_TIMED_OUT), None)

        producer.produce.side_effect = produce
        publisher = KafkaEventPublisher("localhost:9092", producer=producer)

        with pytest.raises(EventPublishError, match="Delivery"):
            await publisher.publish(created_event)

    async def test_flush_timeout(self, producer: MagicMock, created_event: UserCreatedEvent) -> None:
        """Messages still queued after the flush timeout raise."""
        producer.flush.return_value = 1
        publisher = KafkaEventPublisher("localhost:9092", producer=producer)

        with pytest.raises(EventPublishError, match="timed out"):
            await publisher.publish(created_event)

    async def test_local_queue_full(
        self, producer: MagicMock, created_event: UserCreatedEvent
    ) -> None:
        """Producer-side errors raise EventPublishError."""
        producer.produce.side_effect = BufferError("queue full")
        publisher = KafkaEventPublisher("localhost:9092", producer=producer)

        with pytest.raises(EventPublishError):
            await publisher.publish(created_event)


class TestKafkaEventConsumer:
    """Tests for KafkaEventConsumer."""

    @pytest.fixture
    def message(self) -> MagicMock:
        """Return a consumed message."""
        msg = MagicMock()
        msg.error.return_value = None
        msg.topic.return_value = TOPIC_USER_LIFECYCLE
        msg.partition.return_value = 2
        msg.offset.return_value = 41
        msg.value.return_value = b'{"k": "v"}'
        return msg

    @pytest.fixture
    def consumer(self, message: MagicMock) -> MagicMock:
        """Return a consumer that yields one message."""
        consumer = MagicMock()
        consumer.poll.return_value = message
        return consumer

    def _build(self, consumer: MagicMock, handler: AsyncMock) -> KafkaEventConsumer:
        return KafkaEventConsumer(
            brokers="localhost:9092",
            group_id="idplane",
            topic=TOPIC_USER_LIFECYCLE,
            handler=handler,
            retry_backoff=0,
            consumer=consumer,
        )

    async def test_commits_after_handler(
        self, consumer: MagicMock, message: MagicMock
    ) -> None:
        """Offsets are committed once the handler succeeds."""
        handler = AsyncMock()

        assert await self._build(consumer, handler).poll_once()

        handler.assert_awaited_once_with(TOPIC_USER_LIFECYCLE, b'{"k": "v"}')
        consumer.commit.assert_called_once_with(message=message, asynchronous=False)

    async def test_handler_failure_rewinds(self, consumer: MagicMock) -> None:
        """A failed message is not committed and is sought back to."""
        handler = AsyncMock(side_effect=RuntimeError("db down"))

        assert not await self._build(consumer, handler).poll_once()

        consumer.commit.assert_not_called()
        partition = consumer.seek.call_args.args[0]
        assert partition.topic == TOPIC_USER_LIFECYCLE
        assert partition.partition == 2
        assert partition.offset == 41

    async def test_empty_poll(self, consumer: MagicMock) -> None:
        """No message means nothing to do."""
        consumer.poll.return_value = None
        handler = AsyncMock()

        assert not await self._build(consumer, handler).poll_once()

        handler.assert_not_awaited()

    async def test_partition_eof_ignored(self, consumer: MagicMock, message: MagicMock) -> None:
        """Broker-side error messages are not handed to the handler."""
        error = MagicMock()
        error.code.return_value = KafkaError._PARTITION_EOF
        message.error.return_value = error
        handler = AsyncMock()

        assert not await self._build(consumer, handler).poll_once()

        handler.assert_not_awaited()

    async def test_commit_failure_reported(self, consumer: MagicMock) -> None:
        """A failed commit is logged and reported as not processed."""
        consumer.commit.side_effect = KafkaException(KafkaError(KafkaError._TRANSPORT))

        assert not await self._build(consumer, AsyncMock()).poll_once()

    async def test_run_until_stopped(self, consumer: MagicMock) -> None:
        """run() subscribes and loops until stop() is called."""
        handler = AsyncMock()
        kafka_consumer = self._build(consumer, handler)
        handler.side_effect = lambda topic, value: kafka_consumer.stop()

        await kafka_consumer.run()

        consumer.subscribe.assert_called_once_with([TOPIC_USER_LIFECYCLE])
        assert handler.await_count == 1

    async def test_close(self, consumer: MagicMock) -> None:
        """close() closes the underlying consumer."""
        await self._build(consumer, AsyncMock()).close()

        consumer.close.assert_called_once()
