"""Builds the service graph shared by the API and the worker.

Every collaborator is chosen here once and handed to the services through
their constructors; nothing below reaches for a global.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import structlog

from idplane.adapters.auth import PostgresCredentialRepository, PostgresUserRepository
from idplane.adapters.db import AppDatabase
from idplane.adapters.events import KafkaEventPublisher
from idplane.adapters.memory import (
    InMemoryEventPublisher,
    MemoryCredentialRepository,
    MemoryRoleRepository,
    MemoryStore,
    MemoryUserRepository,
)
from idplane.adapters.notifications import (
    BrokerEmailNotifier,
    ConsoleNotifier,
    EmailConfig,
    SmtpEmailNotifier,
)
from idplane.adapters.opa import OpaPolicyEngine
from idplane.adapters.rbac import PostgresRoleRepository
from idplane.config import Settings
from idplane.core.auth import (
    AuthService,
    BcryptPasswordHasher,
    CredentialLifecycle,
    SessionIssuer,
    TokenCodec,
)
from idplane.core.interfaces import EventPublisher, Notifier, PolicyEngine, TransactionManager
from idplane.core.onboarding import OnboardingChoreographer
from idplane.core.rbac import PermissionEvaluator
from idplane.core.users import UserService

logger = structlog.get_logger()


@dataclass
class Container:
    """The wired services of one process."""

    settings: Settings
    sessions: SessionIssuer
    auth: AuthService
    users: UserService
    evaluator: PermissionEvaluator
    lifecycle: CredentialLifecycle
    choreographer: OnboardingChoreographer
    publisher: EventPublisher
    _closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)

    async def close(self) -> None:
        """Release connections in reverse order of creation."""
        for closer in reversed(self._closers):
            await closer()
        self._closers.clear()


async def build_container(
    settings: Settings,
    publisher: EventPublisher | None = None,
    notifier: Notifier | None = None,
    policy_engine: PolicyEngine | None = None,
) -> Container:
    """Connect adapters and assemble the services.

    Args:
        settings: Process settings.
        publisher: Override the event publisher (tests).
        notifier: Override the email notifier (tests).
        policy_engine: Override the policy engine (tests).
    """
    closers: list[Callable[[], Awaitable[None]]] = []
    transactions: TransactionManager

    if settings.storage == "memory":
        store = MemoryStore()
        users_repo = MemoryUserRepository(store)
        credentials_repo = MemoryCredentialRepository(store)
        roles_repo = MemoryRoleRepository(store)
        transactions = store
    else:
        app_db = AppDatabase(settings.database_url)
        await app_db.connect()
        closers.append(app_db.close)
        users_repo = PostgresUserRepository(app_db)
        credentials_repo = PostgresCredentialRepository(app_db)
        roles_repo = PostgresRoleRepository(app_db)
        transactions = app_db

    if publisher is None:
        if settings.storage == "memory":
            publisher = InMemoryEventPublisher()
        else:
            kafka_publisher = KafkaEventPublisher(settings.kafka_brokers, topics=settings.topics)
            closers.append(kafka_publisher.close)
            publisher = kafka_publisher

    if notifier is None:
        notifier = _build_notifier(settings, publisher)

    if policy_engine is None and settings.opa_enabled:
        opa = OpaPolicyEngine(
            settings.opa_url,
            settings.opa_policy_path,
            timeout_seconds=settings.opa_timeout_seconds,
        )
        closers.append(opa.close)
        policy_engine = opa

    hasher = BcryptPasswordHasher(rounds=settings.bcrypt_rounds)
    sessions = SessionIssuer(
        settings.jwt_secret_key,
        access_ttl=settings.access_token_ttl,
        refresh_ttl=settings.refresh_token_ttl,
    )
    lifecycle = CredentialLifecycle(
        users=users_repo,
        credentials=credentials_repo,
        hasher=hasher,
        codec=TokenCodec(),
        notifier=notifier,
        publisher=publisher,
        transactions=transactions,
    )
    auth = AuthService(
        users=users_repo,
        credentials=credentials_repo,
        lifecycle=lifecycle,
        sessions=sessions,
        hasher=hasher,
        publisher=publisher,
        frontend_url=settings.frontend_url,
        lifetimes=settings.token_lifetimes,
    )
    users = UserService(
        users=users_repo,
        credentials=credentials_repo,
        roles=roles_repo,
        publisher=publisher,
        transactions=transactions,
    )
    evaluator = PermissionEvaluator(roles_repo, sessions, policy_engine=policy_engine)

    logger.info(
        "services_wired",
        storage=settings.storage,
        notifier=type(notifier).__name__,
        policy_engine=type(policy_engine).__name__ if policy_engine else None,
    )
    return Container(
        settings=settings,
        sessions=sessions,
        auth=auth,
        users=users,
        evaluator=evaluator,
        lifecycle=lifecycle,
        choreographer=OnboardingChoreographer(users, auth),
        publisher=publisher,
        _closers=closers,
    )


def _build_notifier(settings: Settings, publisher: EventPublisher) -> Notifier:
    if settings.notifier == "console":
        return ConsoleNotifier()
    if settings.notifier == "smtp":
        return SmtpEmailNotifier(
            EmailConfig(
                smtp_host=settings.smtp_host,
                smtp_port=settings.smtp_port,
                smtp_user=settings.smtp_user,
                smtp_password=settings.smtp_password,
                from_email=settings.smtp_from_email,
                use_tls=settings.smtp_use_tls,
            )
        )
    return BrokerEmailNotifier(publisher)
