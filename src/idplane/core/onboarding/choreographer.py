"""Onboarding choreography driven by broker events.

A tenant's first administrator is onboarded in stages, each triggered by
an event rather than by a central coordinator:

1. ``iam.create-initial-admin`` -> admin user, "Tenant Admin" role and
   assignment are created; user-created (``is_initial_admin``) is emitted.
2. user-created with ``is_initial_admin`` -> a setup token is issued and
   mailed.
3. The admin redeems the token through ``AuthService.set_initial_password``.

Invited users follow a parallel path: ``UserService.invite_user`` emits
user-invited, which issues an invitation token here, redeemed through
``AuthService.register_invited_user``.

Delivery is at-least-once. The handlers rely on semantic guards (the
``is_initial_admin`` flag, the user's current status, one-time token
deletion) instead of message-id deduplication.
"""

import json
from enum import Enum

import structlog
from pydantic import ValidationError

from idplane.core.auth.service import AuthService
from idplane.core.auth.types import UserStatus
from idplane.core.events import (
    TOPIC_CREATE_INITIAL_ADMIN,
    TOPIC_USER_LIFECYCLE,
    TenantProvisionedEvent,
    UserCreatedEvent,
    UserEvent,
    UserInvitedEvent,
    parse_lifecycle_event,
)
from idplane.core.exceptions import NotFoundError
from idplane.core.users.service import UserService

logger = structlog.get_logger()


class OnboardingStage(str, Enum):
    """Stages of the onboarding flow (not the user's status)."""

    AWAITING_PROVISION_EVENT = "awaiting_provision_event"
    ADMIN_CREATED = "admin_created"
    TOKEN_ISSUED = "token_issued"
    REDEEMED = "redeemed"


class OnboardingChoreographer:
    """Reacts to inbound events and advances onboarding."""

    def __init__(self, users: UserService, auth: AuthService) -> None:
        """Initialize the choreographer.

        Args:
            users: User directory service.
            auth: Auth service used to issue setup and invitation tokens.
        """
        self._users = users
        self._auth = auth

    @property
    def topics(self) -> tuple[str, ...]:
        """Topics this choreographer consumes."""
        return (TOPIC_CREATE_INITIAL_ADMIN, TOPIC_USER_LIFECYCLE)

    async def handle_raw(self, topic: str, value: bytes) -> OnboardingStage | None:
        """Decode and dispatch one broker message.

        Messages that cannot be decoded into a known event are logged and
        dropped so they do not block the partition. Errors raised by the
        handlers propagate to the consumer, which then leaves the offset
        uncommitted for redelivery.

        Returns:
            The stage reached, or None if the message was ignored.
        """
        try:
            payload = json.loads(value)
            if topic == TOPIC_CREATE_INITIAL_ADMIN:
                provisioned = TenantProvisionedEvent.model_validate(payload)
            elif topic == TOPIC_USER_LIFECYCLE:
                event = parse_lifecycle_event(payload)
            else:
                logger.warning("unexpected_topic", topic=topic)
                return None
        except (ValueError, TypeError, ValidationError) as e:
            # json.JSONDecodeError and pydantic's ValidationError are ValueErrors
            logger.error("poison_message_skipped", topic=topic, error=str(e))
            return None

        if topic == TOPIC_CREATE_INITIAL_ADMIN:
            return await self.handle_tenant_provisioned(provisioned)
        return await self.handle_lifecycle_event(event)

    async def handle_tenant_provisioned(self, event: TenantProvisionedEvent) -> OnboardingStage:
        """Create the tenant's first administrator."""
        logger.info("tenant_provisioned_received", tenant_id=str(event.tenant_id))
        user = await self._users.create_initial_admin(
            event.tenant_id, event.admin_email, event.admin_full_name
        )
        if user.status != UserStatus.PENDING_SETUP:
            return OnboardingStage.REDEEMED
        return OnboardingStage.ADMIN_CREATED

    async def handle_lifecycle_event(self, event: UserEvent) -> OnboardingStage | None:
        """Dispatch a lifecycle topic event.

        Only initial-admin user-created events and user-invited events
        advance onboarding; every other event type is ignored.
        """
        if isinstance(event, UserCreatedEvent):
            if not event.is_initial_admin:
                logger.debug("user_created_not_initial_admin", user_id=str(event.user_id))
                return None
            return await self._issue_token(event, UserStatus.PENDING_SETUP)

        if isinstance(event, UserInvitedEvent):
            return await self._issue_token(event, UserStatus.PENDING_INVITE)

        logger.debug("lifecycle_event_ignored", event_type=getattr(event, "event_type", None))
        return None

    async def _issue_token(
        self,
        event: UserCreatedEvent | UserInvitedEvent,
        expected: UserStatus,
    ) -> OnboardingStage | None:
        try:
            user = await self._users.get_user(event.user_id, event.tenant_id)
        except NotFoundError:
            logger.warning("onboarding_user_missing", user_id=str(event.user_id))
            return None

        if user.status != expected:
            # Redelivery after the user already finished onboarding
            logger.info(
                "onboarding_already_complete",
                user_id=str(user.id),
                status=user.status.value,
            )
            return OnboardingStage.REDEEMED if user.is_active else None

        if expected == UserStatus.PENDING_SETUP:
            await self._auth.issue_setup_token(user)
        else:
            await self._auth.issue_invitation_token(user)

        logger.info(
            "onboarding_token_issued",
            user_id=str(user.id),
            tenant_id=str(user.tenant_id),
            flow=event.event_type,
        )
        return OnboardingStage.TOKEN_ISSUED
