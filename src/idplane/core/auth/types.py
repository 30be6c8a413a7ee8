"""Auth domain types."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr


class UserStatus(str, Enum):
    """Lifecycle states of a user account."""

    PENDING_SETUP = "PENDING_SETUP"  # created for a tenant, awaiting first password
    PENDING_INVITE = "PENDING_INVITE"  # invited by an admin, awaiting registration
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class TokenPurpose(str, Enum):
    """Capability a one-time token grants (the persisted ``scope``)."""

    PASSWORD_RESET = "PASSWORD_RESET"
    EMAIL_VERIFICATION = "EMAIL_VERIFICATION"
    INVITATION = "INVITATION"


class TokenType(str, Enum):
    """Kind of session credential."""

    ACCESS = "access"
    REFRESH = "refresh"


class User(BaseModel):
    """User domain model."""

    id: UUID
    tenant_id: UUID
    email: EmailStr
    full_name: str
    status: UserStatus = UserStatus.PENDING_INVITE
    email_verified: bool = False
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        """Whether the user may authenticate."""
        return self.status == UserStatus.ACTIVE


class Credential(BaseModel):
    """Password credential, 1:1 with an active user."""

    user_id: UUID
    password_hash: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class OneTimeToken(BaseModel):
    """Stored form of a one-time token. Only the digest is ever persisted."""

    hash: bytes
    user_id: UUID
    expiry: datetime
    purpose: TokenPurpose


class SessionClaims(BaseModel):
    """Claims carried by a signed session credential."""

    user_id: str
    tenant_id: str
    email: str
    token_type: TokenType = TokenType.ACCESS
    jti: str
    iat: int  # issued at timestamp
    exp: int  # expiration timestamp


class LoginResult(BaseModel):
    """Session credentials plus the authenticated user."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: User
