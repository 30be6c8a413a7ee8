"""Event contracts exchanged over the broker.

Inbound events are produced by other services (tenant provisioning) or by
this service itself (user lifecycle). Outbound lifecycle events carry an
``event_type`` discriminator so a single topic can hold every user event.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

# Topics
TOPIC_CREATE_INITIAL_ADMIN = "iam.create-initial-admin"
TOPIC_USER_LIFECYCLE = "user.lifecycle"
TOPIC_NOTIFICATION_EMAIL = "notification.send-password-setup"


@dataclass(frozen=True)
class TopicNames:
    """Topic names used by one deployment.

    Producers and consumers must be built from the same instance so that
    this service reads back the lifecycle events it writes.
    """

    tenant_provisioned: str = TOPIC_CREATE_INITIAL_ADMIN
    user_lifecycle: str = TOPIC_USER_LIFECYCLE
    notification_email: str = TOPIC_NOTIFICATION_EMAIL


SYSTEM_ACTOR = "system"
SELF_ACTOR = "self"


def utc_timestamp() -> str:
    """Current instant as an ISO-8601 UTC string."""
    return datetime.now(UTC).isoformat()


class BrokerEvent(BaseModel):
    """Base class for everything published to the broker."""

    model_config = ConfigDict(frozen=True)

    @property
    def partition_key(self) -> str:
        """Key used to partition the message."""
        raise NotImplementedError


class TenantProvisionedEvent(BrokerEvent):
    """A tenant was provisioned and needs its first administrator."""

    tenant_id: UUID
    admin_email: str
    admin_full_name: str

    @property
    def partition_key(self) -> str:
        return str(self.tenant_id)


class UserEvent(BrokerEvent):
    """Base for events on the user lifecycle topic."""

    user_id: UUID
    tenant_id: UUID

    @property
    def partition_key(self) -> str:
        return str(self.user_id)


class UserCreatedEvent(UserEvent):
    """A user record was created.

    ``is_initial_admin`` marks the tenant's first administrator; only those
    events trigger setup-token issuance.
    """

    event_type: Literal["user.created"] = "user.created"
    email: str
    is_initial_admin: bool = False


class UserInvitedEvent(UserEvent):
    """An administrator invited a user who still has to register."""

    event_type: Literal["user.invited"] = "user.invited"
    email: str
    full_name: str


class UserUpdatedEvent(UserEvent):
    event_type: Literal["user.updated"] = "user.updated"


class UserDeletedEvent(UserEvent):
    event_type: Literal["user.deleted"] = "user.deleted"


class RoleAssignedEvent(UserEvent):
    event_type: Literal["role.assigned"] = "role.assigned"
    role_id: UUID


class RoleRevokedEvent(UserEvent):
    event_type: Literal["role.revoked"] = "role.revoked"
    role_id: UUID


class UserStatusChangedEvent(UserEvent):
    """A user's status moved between lifecycle states."""

    event_type: Literal["user.status_changed"] = "user.status_changed"
    old_status: str
    new_status: str
    changed_by: str  # user id or "system"
    reason: str = ""
    timestamp: str = Field(default_factory=utc_timestamp)


class PasswordChangedEvent(UserEvent):
    """A user's password was set or replaced."""

    event_type: Literal["user.password_changed"] = "user.password_changed"
    changed_by: str  # "self" or an admin user id
    method: str  # "initial_setup", "invitation", "reset", "change"
    timestamp: str = Field(default_factory=utc_timestamp)


class UserLoginEvent(UserEvent):
    event_type: Literal["user.login"] = "user.login"
    timestamp: str = Field(default_factory=utc_timestamp)


class EmailNotification(BrokerEvent):
    """Request for the external notification service to send an email."""

    to: str
    subject: str
    body: str

    @property
    def partition_key(self) -> str:
        return self.to


LifecycleEvent = Annotated[
    UserCreatedEvent
    | UserInvitedEvent
    | UserUpdatedEvent
    | UserDeletedEvent
    | RoleAssignedEvent
    | RoleRevokedEvent
    | UserStatusChangedEvent
    | PasswordChangedEvent
    | UserLoginEvent,
    Field(discriminator="event_type"),
]

_lifecycle_adapter: TypeAdapter[LifecycleEvent] = TypeAdapter(LifecycleEvent)


def parse_lifecycle_event(payload: dict) -> UserEvent:
    """Parse a lifecycle topic payload into its event model.

    Payloads without an ``event_type`` (older producers) are recognised by
    shape: ``is_initial_admin`` marks a user-created event and ``full_name``
    a user-invited event.

    Raises:
        pydantic.ValidationError: If the payload matches no known event.
    """
    if "event_type" not in payload:
        if "is_initial_admin" in payload:
            return UserCreatedEvent.model_validate(payload)
        if "full_name" in payload:
            return UserInvitedEvent.model_validate(payload)
    return _lifecycle_adapter.validate_python(payload)
