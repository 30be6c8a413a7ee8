"""Onboarding worker: consumes broker events and advances onboarding.

Run with ``python -m idplane.entrypoints.worker``. One consumer runs per
topic; a background task periodically purges expired one-time tokens.
"""

import asyncio
import signal
from collections.abc import Awaitable, Callable

import structlog

from idplane.adapters.events import KafkaEventConsumer
from idplane.config import Settings, get_settings
from idplane.core.auth import CredentialLifecycle
from idplane.core.events import TOPIC_CREATE_INITIAL_ADMIN, TOPIC_USER_LIFECYCLE
from idplane.core.onboarding import OnboardingChoreographer
from idplane.entrypoints.wiring import build_container
from idplane.log_config import configure_logging

logger = structlog.get_logger()

PURGE_INTERVAL_SECONDS = 3600.0


def topic_handler(
    choreographer: OnboardingChoreographer,
    logical_topic: str,
) -> Callable[[str, bytes], Awaitable[object]]:
    """Route messages from a configured topic name to the choreographer.

    Topic names are configurable per deployment, so messages are dispatched
    by the logical topic they were subscribed for, not the name they
    arrived on.
    """

    async def handle(topic: str, value: bytes) -> object:
        return await choreographer.handle_raw(logical_topic, value)

    return handle


def build_consumers(
    settings: Settings,
    choreographer: OnboardingChoreographer,
) -> list[KafkaEventConsumer]:
    """One consumer per inbound topic, sharing the consumer group.

    Topic names come from ``settings.topics``, the same names the event
    publisher writes to.
    """
    topics = settings.topics
    routes = {
        topics.tenant_provisioned: TOPIC_CREATE_INITIAL_ADMIN,
        topics.user_lifecycle: TOPIC_USER_LIFECYCLE,
    }
    return [
        KafkaEventConsumer(
            brokers=settings.kafka_brokers,
            group_id=settings.kafka_consumer_group,
            topic=topic,
            handler=topic_handler(choreographer, logical),
        )
        for topic, logical in routes.items()
    ]


async def purge_expired_tokens_periodically(
    lifecycle: CredentialLifecycle,
    stop: asyncio.Event,
    interval: float = PURGE_INTERVAL_SECONDS,
) -> None:
    """Delete expired one-time tokens until ``stop`` is set."""
    while not stop.is_set():
        try:
            await lifecycle.purge_expired_tokens()
        except Exception as e:
            logger.error("token_purge_failed", error=str(e))
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except TimeoutError:
            pass


async def run_worker(settings: Settings) -> None:
    """Consume until SIGINT or SIGTERM."""
    container = await build_container(settings)
    consumers = build_consumers(settings, container.choreographer)
    stop = asyncio.Event()

    def request_stop() -> None:
        logger.info("worker_stop_requested")
        stop.set()
        for consumer in consumers:
            consumer.stop()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, request_stop)

    logger.info("worker_started", topics=[c.topic for c in consumers])
    try:
        await asyncio.gather(
            *(consumer.run() for consumer in consumers),
            purge_expired_tokens_periodically(container.lifecycle, stop),
        )
    finally:
        for consumer in consumers:
            await consumer.close()
        await container.close()
        logger.info("worker_stopped")


def main() -> None:
    """Worker entry point."""
    settings = get_settings()
    configure_logging(settings.log_level, json=settings.log_json)
    asyncio.run(run_worker(settings))


if __name__ == "__main__":
    main()
