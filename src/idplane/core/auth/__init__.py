"""Authentication: one-time tokens, credentials and session credentials."""

from idplane.core.auth.jwt import SessionIssuer
from idplane.core.auth.lifecycle import CredentialLifecycle
from idplane.core.auth.password import BcryptPasswordHasher, PasswordHasher
from idplane.core.auth.repository import CredentialRepository, UserRepository
from idplane.core.auth.service import AuthService, TokenLifetimes
from idplane.core.auth.tokens import TokenCodec
from idplane.core.auth.types import (
    Credential,
    LoginResult,
    OneTimeToken,
    SessionClaims,
    TokenPurpose,
    TokenType,
    User,
    UserStatus,
)

__all__ = [
    "User",
    "UserStatus",
    "Credential",
    "OneTimeToken",
    "TokenPurpose",
    "TokenType",
    "SessionClaims",
    "LoginResult",
    "TokenCodec",
    "PasswordHasher",
    "BcryptPasswordHasher",
    "SessionIssuer",
    "UserRepository",
    "CredentialRepository",
    "CredentialLifecycle",
    "AuthService",
    "TokenLifetimes",
]
