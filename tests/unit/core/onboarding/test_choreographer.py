"""Tests for the onboarding choreographer."""

from __future__ import annotations

import json
import uuid

import pytest

from idplane.adapters.memory import (
    InMemoryEventPublisher,
    MemoryCredentialRepository,
    MemoryRoleRepository,
    MemoryUserRepository,
    RecordingNotifier,
)
from idplane.core.auth import AuthService, BcryptPasswordHasher
from idplane.core.auth.types import UserStatus
from idplane.core.events import (
    TOPIC_CREATE_INITIAL_ADMIN,
    TOPIC_USER_LIFECYCLE,
    TenantProvisionedEvent,
    UserCreatedEvent,
    UserDeletedEvent,
    UserInvitedEvent,
)
from idplane.core.onboarding import OnboardingChoreographer, OnboardingStage
from idplane.core.rbac.types import TENANT_ADMIN_ROLE
from idplane.core.users import UserService
from tests.fixtures.domain_objects import token_from_body


def _provisioned(tenant_id: uuid.UUID) -> bytes:
    return json.dumps(
        {"tenant_id": str(tenant_id), "admin_email": "a@x.com", "admin_full_name": "A"}
    ).encode()


async def _drain(
    choreographer: OnboardingChoreographer,
    publisher: InMemoryEventPublisher,
) -> list[OnboardingStage | None]:
    """Feed every recorded lifecycle event back through the choreographer."""
    stages = []
    for event in list(publisher.events):
        if isinstance(event, UserCreatedEvent | UserInvitedEvent):
            stages.append(await choreographer.handle_lifecycle_event(event))
    publisher.events.clear()
    return stages


class TestTenantProvisioned:
    """Tests for the tenant-provisioned stage."""

    async def test_creates_initial_admin(
        self,
        choreographer: OnboardingChoreographer,
        users_repo: MemoryUserRepository,
        roles_repo: MemoryRoleRepository,
        publisher: InMemoryEventPublisher,
        tenant_id: uuid.UUID,
    ) -> None:
        """The provisioned tenant gets a pending admin with the admin role."""
        stage = await choreographer.handle_raw(TOPIC_CREATE_INITIAL_ADMIN, _provisioned(tenant_id))

        assert stage == OnboardingStage.ADMIN_CREATED
        user = await users_repo.get_user_by_email("a@x.com", tenant_id)
        assert user is not None
        assert user.status == UserStatus.PENDING_SETUP
        role = await roles_repo.get_role_by_name(tenant_id, TENANT_ADMIN_ROLE)
        assert role is not None
        assert {"users:create", "users:read", "users:update", "users:delete"} <= set(
            role.permissions
        )
        created = publisher.of_type(UserCreatedEvent)
        assert len(created) == 1
        assert created[0].user_id == user.id
        assert created[0].is_initial_admin

    async def test_full_setup_flow(
        self,
        choreographer: OnboardingChoreographer,
        auth_service: AuthService,
        users_repo: MemoryUserRepository,
        credentials_repo: MemoryCredentialRepository,
        hasher: BcryptPasswordHasher,
        publisher: InMemoryEventPublisher,
        notifier: RecordingNotifier,
        tenant_id: uuid.UUID,
    ) -> None:
        """Provision, mail the setup link, redeem it and log in."""
        await choreographer.handle_tenant_provisioned(
            TenantProvisionedEvent(tenant_id=tenant_id, admin_email="a@x.com", admin_full_name="A")
        )
        assert await _drain(choreographer, publisher) == [OnboardingStage.TOKEN_ISSUED]

        to, _, body = notifier.sent[0]
        assert to == "a@x.com"
        user = await auth_service.set_initial_password(token_from_body(body), "Secret123")

        assert user.status == UserStatus.ACTIVE
        credential = await credentials_repo.get_credential(user.id)
        assert hasher.verify("Secret123", credential.password_hash)  # pragma: allowlist secret
        assert not hasher.verify("Secret12", credential.password_hash)  # pragma: allowlist secret
        assert (await auth_service.login("a@x.com", "Secret123", tenant_id)).access_token

    async def test_redelivery_after_setup(
        self,
        choreographer: OnboardingChoreographer,
        auth_service: AuthService,
        publisher: InMemoryEventPublisher,
        notifier: RecordingNotifier,
        tenant_id: uuid.UUID,
    ) -> None:
        """A duplicate provision event after setup changes nothing."""
        await choreographer.handle_raw(TOPIC_CREATE_INITIAL_ADMIN, _provisioned(tenant_id))
        await _drain(choreographer, publisher)
        await auth_service.set_initial_password(token_from_body(notifier.sent[0][2]), "Secret123")
        publisher.events.clear()

        stage = await choreographer.handle_raw(TOPIC_CREATE_INITIAL_ADMIN, _provisioned(tenant_id))

        assert stage == OnboardingStage.REDEEMED
        assert publisher.of_type(UserCreatedEvent) == []
        assert len(notifier.sent) == 1

    async def test_duplicate_created_event_after_setup(
        self,
        choreographer: OnboardingChoreographer,
        auth_service: AuthService,
        publisher: InMemoryEventPublisher,
        notifier: RecordingNotifier,
        tenant_id: uuid.UUID,
    ) -> None:
        """A redelivered user-created event does not mail a new token."""
        await choreographer.handle_raw(TOPIC_CREATE_INITIAL_ADMIN, _provisioned(tenant_id))
        created = publisher.of_type(UserCreatedEvent)[0]
        await choreographer.handle_lifecycle_event(created)
        await auth_service.set_initial_password(token_from_body(notifier.sent[0][2]), "Secret123")

        stage = await choreographer.handle_lifecycle_event(created)

        assert stage == OnboardingStage.REDEEMED
        assert len(notifier.sent) == 1


class TestInvitationFlow:
    """Tests for the invitation stage."""

    async def test_invited_user_registers_and_logs_in(
        self,
        choreographer: OnboardingChoreographer,
        user_service: UserService,
        auth_service: AuthService,
        publisher: InMemoryEventPublisher,
        notifier: RecordingNotifier,
        tenant_id: uuid.UUID,
    ) -> None:
        """Invite, mail the registration link and register with a new name."""
        invited = await user_service.invite_user(tenant_id, "b@x.com", "Invitee")
        assert await _drain(choreographer, publisher) == [OnboardingStage.TOKEN_ISSUED]

        result = await auth_service.register_invited_user(
            token_from_body(notifier.sent[0][2]), "Bob Builder", "Secret123"
        )

        assert result.access_token
        assert result.refresh_token
        assert result.user.id == invited.id
        assert result.user.full_name == "Bob Builder"
        assert result.user.status == UserStatus.ACTIVE


class TestMessageHandling:
    """Tests for decoding and dispatch."""

    @pytest.mark.parametrize(
        ("topic", "value"),
        [
            (TOPIC_CREATE_INITIAL_ADMIN, b"not json"),
            (TOPIC_CREATE_INITIAL_ADMIN, b'{"tenant_id": "nope"}'),
            (TOPIC_USER_LIFECYCLE, b'{"event_type": "user.unknown"}'),
            (TOPIC_USER_LIFECYCLE, b"[]"),
        ],
    )
    async def test_poison_messages_skipped(
        self,
        choreographer: OnboardingChoreographer,
        topic: str,
        value: bytes,
    ) -> None:
        """Undecodable messages are dropped instead of raising."""
        assert await choreographer.handle_raw(topic, value) is None

    async def test_unknown_topic_ignored(self, choreographer: OnboardingChoreographer) -> None:
        """Messages from other topics are ignored."""
        assert await choreographer.handle_raw("other.topic", b"{}") is None

    async def test_non_admin_created_event_ignored(
        self,
        choreographer: OnboardingChoreographer,
        user_service: UserService,
        notifier: RecordingNotifier,
        tenant_id: uuid.UUID,
    ) -> None:
        """Ordinary user-created events do not issue setup tokens."""
        user = await user_service.create_user(tenant_id, "c@x.com", "C")
        event = UserCreatedEvent(user_id=user.id, tenant_id=tenant_id, email=user.email)

        assert await choreographer.handle_lifecycle_event(event) is None
        assert notifier.sent == []

    async def test_other_lifecycle_events_ignored(
        self, choreographer: OnboardingChoreographer, tenant_id: uuid.UUID
    ) -> None:
        """Events that do not drive onboarding are ignored."""
        event = UserDeletedEvent(user_id=uuid.uuid4(), tenant_id=tenant_id)

        assert await choreographer.handle_lifecycle_event(event) is None

    async def test_missing_user_skipped(
        self, choreographer: OnboardingChoreographer, tenant_id: uuid.UUID
    ) -> None:
        """Events for deleted users are dropped."""
        event = UserInvitedEvent(
            user_id=uuid.uuid4(), tenant_id=tenant_id, email="x@x.com", full_name="X"
        )

        assert await choreographer.handle_lifecycle_event(event) is None

    async def test_legacy_payload_without_event_type(
        self,
        choreographer: OnboardingChoreographer,
        user_service: UserService,
        notifier: RecordingNotifier,
        tenant_id: uuid.UUID,
    ) -> None:
        """Payloads shaped like user-created are recognised without a type tag."""
        user = await user_service.create_initial_admin(tenant_id, "a@x.com", "A")
        payload = json.dumps(
            {
                "user_id": str(user.id),
                "tenant_id": str(tenant_id),
                "email": "a@x.com",
                "is_initial_admin": True,
            }
        ).encode()

        stage = await choreographer.handle_raw(TOPIC_USER_LIFECYCLE, payload)

        assert stage == OnboardingStage.TOKEN_ISSUED
        assert len(notifier.sent) == 1

    def test_topics(self, choreographer: OnboardingChoreographer) -> None:
        """The choreographer consumes both inbound topics."""
        assert set(choreographer.topics) == {TOPIC_CREATE_INITIAL_ADMIN, TOPIC_USER_LIFECYCLE}
