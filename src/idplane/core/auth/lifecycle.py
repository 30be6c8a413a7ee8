"""Credential and one-time token lifecycle.

Owns the transition of a user from ``PENDING_SETUP`` / ``PENDING_INVITE``
to ``ACTIVE``: tokens are issued (digest stored, plaintext mailed) and
later redeemed together with a new password.
"""

import asyncio
from collections.abc import Callable, Collection
from datetime import timedelta
from uuid import UUID

import structlog

from idplane.core.auth.messages import EmailContent
from idplane.core.auth.password import PasswordHasher
from idplane.core.auth.repository import CredentialRepository, UserRepository
from idplane.core.auth.tokens import TokenCodec, is_token_expired, token_expiry
from idplane.core.auth.types import OneTimeToken, TokenPurpose, User, UserStatus
from idplane.core.events import (
    SELF_ACTOR,
    BrokerEvent,
    PasswordChangedEvent,
    UserStatusChangedEvent,
    UserUpdatedEvent,
)
from idplane.core.exceptions import (
    AccountNotActiveError,
    AlreadyExistsError,
    NotificationError,
    TokenExpiredError,
    TokenGenerationError,
    TokenInvalidError,
)
from idplane.core.interfaces import EventPublisher, Notifier, TransactionManager
from idplane.core.publishing import publish_all

logger = structlog.get_logger()

# Attempts to draw a token whose digest is not already stored
MAX_GENERATION_ATTEMPTS = 3

ComposeEmail = Callable[[str], EmailContent]


class CredentialLifecycle:
    """Issues and redeems one-time tokens."""

    def __init__(
        self,
        users: UserRepository,
        credentials: CredentialRepository,
        hasher: PasswordHasher,
        codec: TokenCodec,
        notifier: Notifier,
        publisher: EventPublisher,
        transactions: TransactionManager,
    ) -> None:
        """Initialize with collaborators.

        Args:
            users: User directory.
            credentials: Credential store (password hashes and token digests).
            hasher: Password hasher.
            codec: One-time token codec.
            notifier: Delivers token emails.
            publisher: Publishes status/password events.
            transactions: Groups the redemption writes.
        """
        self._users = users
        self._credentials = credentials
        self._hasher = hasher
        self._codec = codec
        self._notifier = notifier
        self._publisher = publisher
        self._transactions = transactions

    async def issue_token(
        self,
        user: User,
        purpose: TokenPurpose,
        ttl: timedelta,
        compose: ComposeEmail,
    ) -> str:
        """Generate, store and deliver a one-time token.

        The token is persisted before anything is sent. If delivery then
        fails the token is not retracted: it stays redeemable until it
        expires and a retry simply issues another one.

        Args:
            user: Token owner; the email goes to ``user.email``.
            purpose: Capability the token grants.
            ttl: How long the token stays redeemable.
            compose: Builds the email from the plaintext token.

        Returns:
            The plaintext token.

        Raises:
            TokenGenerationError: If no unique digest could be produced.
            NotificationError: If the token was stored but not delivered.
        """
        plaintext = await self._store_new_token(user.id, purpose, ttl)
        message = compose(plaintext)

        try:
            await self._notifier.send_email(user.email, message.subject, message.body)
        except NotificationError as e:
            logger.error(
                "token_notification_failed",
                user_id=str(user.id),
                purpose=purpose.value,
                error=str(e),
            )
            raise

        logger.info("token_issued", user_id=str(user.id), purpose=purpose.value)
        return plaintext

    async def redeem(
        self,
        plaintext: str,
        new_password: str,
        purposes: Collection[TokenPurpose],
        method: str,
        full_name: str | None = None,
    ) -> User:
        """Redeem a token and set the user's password.

        ``PENDING_SETUP`` users become ``ACTIVE``; ``PENDING_INVITE`` users
        are activated with ``full_name`` (their current name if omitted);
        ``ACTIVE`` users keep their status and get a new password.

        The writes (token deletion, credential, status) run in one
        transaction. Deleting the token first means a concurrent second
        redemption of the same token fails instead of double-applying.
        Events are published after commit.

        Args:
            plaintext: Token as delivered to the user.
            new_password: Password to set.
            purposes: Token purposes this flow accepts.
            method: Password-changed method tag ("initial_setup", "reset", ...).
            full_name: Display name supplied at invited-user registration.

        Returns:
            The updated user.

        Raises:
            MalformedTokenError: If the token is not valid base64.
            TokenInvalidError: If the token is unknown or for another purpose.
            TokenExpiredError: If the token has expired.
            AccountNotActiveError: If the user is suspended.
            EventPublishError: If follow-up events could not be published.
        """
        token_hash, token = await self._lookup(plaintext, purposes)

        user = await self._users.get_user_by_id(token.user_id)
        if user is None:
            logger.warning("token_user_missing", user_id=str(token.user_id))
            raise TokenInvalidError()
        if user.status == UserStatus.SUSPENDED:
            logger.warning("token_redeem_suspended_user", user_id=str(user.id))
            raise AccountNotActiveError()

        password_hash = await asyncio.to_thread(self._hasher.hash, new_password)

        old_status = user.status
        async with self._transactions.transaction():
            if not await self._credentials.delete_token(token_hash):
                # Consumed by a concurrent redemption
                raise TokenInvalidError()

            if await self._credentials.get_credential(user.id) is None:
                await self._credentials.create_credential(user.id, password_hash)
            else:
                await self._credentials.update_credential(user.id, password_hash)

            updated = await self._activate(user, full_name)

        logger.info(
            "token_redeemed",
            user_id=str(user.id),
            purpose=token.purpose.value,
            old_status=old_status.value,
            new_status=updated.status.value,
        )

        events: list[BrokerEvent] = []
        if updated.status != old_status:
            events.append(
                UserStatusChangedEvent(
                    user_id=user.id,
                    tenant_id=user.tenant_id,
                    old_status=old_status.value,
                    new_status=updated.status.value,
                    changed_by=SELF_ACTOR,
                    reason=method,
                )
            )
        events.append(
            PasswordChangedEvent(
                user_id=user.id,
                tenant_id=user.tenant_id,
                changed_by=SELF_ACTOR,
                method=method,
            )
        )
        await publish_all(self._publisher, *events)
        return updated

    async def verify_email(self, plaintext: str) -> User:
        """Redeem an ``EMAIL_VERIFICATION`` token and mark the email verified.

        Raises:
            TokenInvalidError: If the token is unknown or for another purpose.
            TokenExpiredError: If the token has expired.
        """
        token_hash, token = await self._lookup(plaintext, {TokenPurpose.EMAIL_VERIFICATION})

        async with self._transactions.transaction():
            if not await self._credentials.delete_token(token_hash):
                raise TokenInvalidError()
            user = await self._users.update_user(token.user_id, email_verified=True)
            if user is None:
                raise TokenInvalidError()

        logger.info("email_verified", user_id=str(user.id))
        await publish_all(self._publisher, UserUpdatedEvent(user_id=user.id, tenant_id=user.tenant_id))
        return user

    async def revoke_tokens(self, user_id: UUID, purpose: TokenPurpose | None = None) -> int:
        """Delete a user's outstanding one-time tokens."""
        count = await self._credentials.delete_user_tokens(user_id, purpose)
        logger.info(
            "tokens_revoked",
            user_id=str(user_id),
            purpose=purpose.value if purpose else None,
            count=count,
        )
        return count

    async def purge_expired_tokens(self) -> int:
        """Garbage-collect expired tokens. They are inert either way."""
        count = await self._credentials.delete_expired_tokens()
        logger.info("expired_tokens_purged", count=count)
        return count

    async def _store_new_token(self, user_id: UUID, purpose: TokenPurpose, ttl: timedelta) -> str:
        for attempt in range(1, MAX_GENERATION_ATTEMPTS + 1):
            plaintext, digest = self._codec.generate()
            try:
                await self._credentials.create_token(
                    OneTimeToken(
                        hash=digest,
                        user_id=user_id,
                        expiry=token_expiry(ttl),
                        purpose=purpose,
                    )
                )
            except AlreadyExistsError:
                logger.warning("token_digest_collision", user_id=str(user_id), attempt=attempt)
                continue
            return plaintext
        raise TokenGenerationError("Could not generate a unique token")

    async def _lookup(
        self,
        plaintext: str,
        purposes: Collection[TokenPurpose],
    ) -> tuple[bytes, OneTimeToken]:
        token_hash = self._codec.digest(plaintext)

        token = await self._credentials.get_token(token_hash)
        if token is None:
            logger.warning("token_not_found")
            raise TokenInvalidError()

        if token.purpose not in purposes:
            logger.warning(
                "token_purpose_mismatch",
                user_id=str(token.user_id),
                purpose=token.purpose.value,
            )
            raise TokenInvalidError()

        if is_token_expired(token.expiry):
            logger.warning("token_expired", user_id=str(token.user_id))
            raise TokenExpiredError()

        return token_hash, token

    async def _activate(self, user: User, full_name: str | None) -> User:
        if user.status == UserStatus.PENDING_INVITE:
            updated = await self._users.activate_invited_user(user.id, full_name or user.full_name)
        elif user.status == UserStatus.PENDING_SETUP:
            updated = await self._users.update_user_status(user.id, UserStatus.ACTIVE)
        else:
            return user

        if updated is None:
            raise TokenInvalidError()
        return updated
