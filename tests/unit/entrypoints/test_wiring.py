"""Tests for service wiring."""

import uuid
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from idplane.adapters.events import KafkaEventPublisher
from idplane.config import Settings
from idplane.core.events import TopicNames, UserCreatedEvent
from idplane.entrypoints.wiring import build_container
from idplane.entrypoints.worker import build_consumers


@pytest.fixture
def custom_topics(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Return settings with non-default topic names."""
    monkeypatch.setenv("STORAGE", "postgres")
    monkeypatch.setenv("USER_LIFECYCLE_TOPIC", "prod.user.lifecycle")
    monkeypatch.setenv("TENANT_PROVISIONED_TOPIC", "prod.tenants")
    monkeypatch.setenv("NOTIFICATION_EMAIL_TOPIC", "prod.mail")
    monkeypatch.setenv("OPA_ENABLED", "false")
    monkeypatch.delenv("NOTIFIER", raising=False)
    return Settings()


class TestBuildContainer:
    """Tests for build_container."""

    async def test_publisher_uses_configured_topics(self, custom_topics: Settings) -> None:
        """The Kafka publisher is built with the configured topic names."""
        app_db = MagicMock()
        app_db.connect = AsyncMock()
        with (
            patch("idplane.entrypoints.wiring.AppDatabase", return_value=app_db),
            patch("idplane.entrypoints.wiring.KafkaEventPublisher") as publisher_cls,
        ):
            await build_container(custom_topics)

        assert publisher_cls.call_args.kwargs["topics"] == TopicNames(
            tenant_provisioned="prod.tenants",
            user_lifecycle="prod.user.lifecycle",
            notification_email="prod.mail",
        )

    async def test_lifecycle_events_reach_own_consumer(self, custom_topics: Settings) -> None:
        """Events written under a custom lifecycle topic are the ones the worker reads."""
        producer = MagicMock()

        def produce(topic: str, key: bytes, value: bytes, on_delivery: Any) -> None:
            on_delivery(None, MagicMock())

        producer.produce.side_effect = produce
        producer.flush.return_value = 0
        publisher = KafkaEventPublisher(
            custom_topics.kafka_brokers, topics=custom_topics.topics, producer=producer
        )

        await publisher.publish(
            UserCreatedEvent(
                user_id=uuid.uuid4(),
                tenant_id=uuid.uuid4(),
                email="a@x.com",
                is_initial_admin=True,
            )
        )
        with patch("idplane.entrypoints.worker.KafkaEventConsumer") as consumer_cls:
            build_consumers(custom_topics, MagicMock())

        subscribed = {c.kwargs["topic"] for c in consumer_cls.call_args_list}
        assert producer.produce.call_args.args[0] == "prod.user.lifecycle"
        assert producer.produce.call_args.args[0] in subscribed
