"""Auth service for login, token redemption and session management."""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from functools import partial
from uuid import UUID

import structlog

from idplane.core.auth import messages
from idplane.core.auth.jwt import SessionIssuer
from idplane.core.auth.lifecycle import CredentialLifecycle
from idplane.core.auth.password import PasswordHasher
from idplane.core.auth.repository import CredentialRepository, UserRepository
from idplane.core.auth.types import LoginResult, SessionClaims, TokenPurpose, TokenType, User
from idplane.core.events import UserLoginEvent
from idplane.core.exceptions import (
    AccountNotActiveError,
    EventPublishError,
    InternalError,
    InvalidCredentialsError,
    NotFoundError,
    TokenInvalidError,
)
from idplane.core.interfaces import EventPublisher

logger = structlog.get_logger()


@dataclass(frozen=True)
class TokenLifetimes:
    """How long each kind of one-time token stays redeemable."""

    setup: timedelta = timedelta(hours=24)
    invitation: timedelta = timedelta(hours=72)
    reset: timedelta = timedelta(hours=1)
    email_verification: timedelta = timedelta(hours=24)


class AuthService:
    """Service for authentication operations."""

    def __init__(
        self,
        users: UserRepository,
        credentials: CredentialRepository,
        lifecycle: CredentialLifecycle,
        sessions: SessionIssuer,
        hasher: PasswordHasher,
        publisher: EventPublisher,
        frontend_url: str,
        lifetimes: TokenLifetimes | None = None,
    ) -> None:
        """Initialize the auth service.

        Args:
            users: User directory.
            credentials: Credential store.
            lifecycle: One-time token issuance and redemption.
            sessions: Session credential issuer.
            hasher: Password hasher.
            publisher: Event publisher for login events.
            frontend_url: Base URL used in emailed links.
            lifetimes: One-time token lifetimes.
        """
        self._users = users
        self._credentials = credentials
        self._lifecycle = lifecycle
        self._sessions = sessions
        self._hasher = hasher
        self._publisher = publisher
        self._frontend_url = frontend_url
        self._lifetimes = lifetimes or TokenLifetimes()

    async def login(self, email: str, password: str, tenant_id: UUID) -> LoginResult:
        """Authenticate user and return session credentials.

        The account status is checked before the credential is loaded, so
        a non-active account never reaches password comparison.

        Args:
            email: User's email address.
            password: Plain text password.
            tenant_id: Tenant to log into.

        Returns:
            Access and refresh tokens with the user.

        Raises:
            InvalidCredentialsError: If the email or password is wrong.
            AccountNotActiveError: If the account is not ``ACTIVE``.
        """
        user = await self._users.get_user_by_email(email, tenant_id)
        if user is None:
            logger.info("login_unknown_email", tenant_id=str(tenant_id))
            raise InvalidCredentialsError()

        if not user.is_active:
            logger.info("login_inactive_user", user_id=str(user.id), status=user.status.value)
            raise AccountNotActiveError()

        credential = await self._credentials.get_credential(user.id)
        if credential is None:
            logger.warning("login_missing_credential", user_id=str(user.id))
            raise InvalidCredentialsError()

        valid = await asyncio.to_thread(self._hasher.verify, password, credential.password_hash)
        if not valid:
            logger.info("login_wrong_password", user_id=str(user.id))
            raise InvalidCredentialsError()

        result = self._start_session(user)
        await self._record_login(user)
        logger.info("login_successful", user_id=str(user.id), tenant_id=str(user.tenant_id))
        return result

    async def issue_setup_token(self, user: User) -> str:
        """Issue and mail the first-password token of an initial admin."""
        ttl = self._lifetimes.setup
        return await self._lifecycle.issue_token(
            user,
            TokenPurpose.PASSWORD_RESET,
            ttl,
            partial(messages.setup_password_email, self._frontend_url, ttl=ttl),
        )

    async def issue_invitation_token(self, user: User) -> str:
        """Issue and mail the registration token of an invited user."""
        ttl = self._lifetimes.invitation
        return await self._lifecycle.issue_token(
            user,
            TokenPurpose.INVITATION,
            ttl,
            partial(
                messages.invitation_email,
                self._frontend_url,
                ttl=ttl,
                full_name=user.full_name,
            ),
        )

    async def set_initial_password(self, token: str, password: str) -> User:
        """Redeem a setup token and activate the account."""
        return await self._lifecycle.redeem(
            token,
            password,
            purposes={TokenPurpose.PASSWORD_RESET},
            method="initial_setup",
        )

    async def register_invited_user(self, token: str, full_name: str, password: str) -> LoginResult:
        """Redeem an invitation token and log the new user in.

        Raises:
            TokenInvalidError: If the token is unknown or not an invitation.
            TokenExpiredError: If the invitation has expired.
        """
        user = await self._lifecycle.redeem(
            token,
            password,
            purposes={TokenPurpose.INVITATION},
            method="invitation",
            full_name=full_name,
        )
        result = self._start_session(user)
        await self._record_login(user)
        logger.info("invited_user_registered", user_id=str(user.id))
        return result

    async def refresh_token(self, refresh_token: str) -> str:
        """Exchange a refresh token for a new access token.

        The user's current status is not re-checked; a suspended user can
        refresh until the refresh token itself expires.

        Raises:
            TokenInvalidError: If the token is invalid or not a refresh token.
            TokenExpiredError: If the refresh token has expired.
        """
        claims = self._sessions.validate(refresh_token)
        if claims.token_type != TokenType.REFRESH:
            logger.warning("refresh_with_access_token", user_id=claims.user_id)
            raise TokenInvalidError()
        return self._sessions.issue_access(claims.user_id, claims.tenant_id, claims.email)

    def validate_token(self, token: str) -> SessionClaims:
        """Validate a session token and return its claims."""
        return self._sessions.validate(token)

    async def forgot_password(self, email: str, tenant_id: UUID) -> None:
        """Request a password reset.

        For security, this always succeeds (doesn't reveal if the email
        exists, whether the account is active, or whether delivery worked).
        """
        user = await self._users.get_user_by_email(email, tenant_id)
        if user is None:
            logger.info("password_reset_requested_unknown_email", tenant_id=str(tenant_id))
            return

        if not user.is_active:
            logger.info("password_reset_requested_inactive_user", user_id=str(user.id))
            return

        ttl = self._lifetimes.reset
        try:
            await self._lifecycle.revoke_tokens(user.id, TokenPurpose.PASSWORD_RESET)
            await self._lifecycle.issue_token(
                user,
                TokenPurpose.PASSWORD_RESET,
                ttl,
                partial(messages.password_reset_email, self._frontend_url, ttl=ttl),
            )
        except InternalError as e:
            # Failing only for existing accounts would reveal them
            logger.error(
                "password_reset_issue_failed",
                user_id=str(user.id),
                error_type=type(e).__name__,
                error=str(e),
            )

    async def reset_password(self, token: str, password: str) -> None:
        """Reset password using a valid token.

        Any other outstanding reset tokens of the user are revoked.
        """
        user = await self._lifecycle.redeem(
            token,
            password,
            purposes={TokenPurpose.PASSWORD_RESET},
            method="reset",
        )
        await self._lifecycle.revoke_tokens(user.id, TokenPurpose.PASSWORD_RESET)
        logger.info("password_reset_successful", user_id=str(user.id))

    async def logout(self, user_id: UUID) -> int:
        """Revoke every outstanding one-time token of a user.

        Session credentials are stateless and simply run out.
        """
        return await self._lifecycle.revoke_tokens(user_id)

    async def confirm_password(self, user_id: UUID, password: str) -> None:
        """Check a user's current password.

        Raises:
            NotFoundError: If the user has no credential.
            InvalidCredentialsError: If the password does not match.
        """
        credential = await self._credentials.get_credential(user_id)
        if credential is None:
            raise NotFoundError("Credential not found")

        valid = await asyncio.to_thread(self._hasher.verify, password, credential.password_hash)
        if not valid:
            raise InvalidCredentialsError("Incorrect password")

    async def request_email_verification(self, user_id: UUID) -> None:
        """Send an email verification link unless the address is verified.

        Raises:
            NotFoundError: If the user does not exist.
        """
        user = await self._users.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        if user.email_verified:
            logger.info("email_already_verified", user_id=str(user.id))
            return

        await self._lifecycle.revoke_tokens(user.id, TokenPurpose.EMAIL_VERIFICATION)

        ttl = self._lifetimes.email_verification
        await self._lifecycle.issue_token(
            user,
            TokenPurpose.EMAIL_VERIFICATION,
            ttl,
            partial(messages.email_verification_email, self._frontend_url, ttl=ttl),
        )

    async def verify_email(self, token: str) -> User:
        """Redeem an email verification token."""
        return await self._lifecycle.verify_email(token)

    def _start_session(self, user: User) -> LoginResult:
        user_id, tenant_id = str(user.id), str(user.tenant_id)
        return LoginResult(
            access_token=self._sessions.issue_access(user_id, tenant_id, user.email),
            refresh_token=self._sessions.issue_refresh(user_id, tenant_id, user.email),
            user=user,
        )

    async def _record_login(self, user: User) -> None:
        # Bookkeeping only; a failure here must not undo the login
        try:
            await self._users.update_last_login(user.id)
        except Exception as e:
            logger.warning("update_last_login_failed", user_id=str(user.id), error=str(e))

        try:
            await self._publisher.publish(UserLoginEvent(user_id=user.id, tenant_id=user.tenant_id))
        except EventPublishError as e:
            logger.warning("login_event_publish_failed", user_id=str(user.id), error=str(e))
