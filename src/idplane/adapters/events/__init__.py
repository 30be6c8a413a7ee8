"""Broker adapters."""

from idplane.adapters.events.kafka import KafkaEventConsumer, KafkaEventPublisher

__all__ = ["KafkaEventConsumer", "KafkaEventPublisher"]
