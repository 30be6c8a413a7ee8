"""Domain-specific exceptions.

All exceptions in the idplane system inherit from IdplaneError. The
intermediate classes form the error taxonomy callers map to transport
status codes: not found, invalid argument, unauthenticated, permission
denied, already exists and internal.
"""

from __future__ import annotations


class IdplaneError(Exception):
    """Base exception for all idplane errors."""

    pass


class NotFoundError(IdplaneError):
    """A user, role or token does not exist."""

    pass


class InvalidArgumentError(IdplaneError):
    """Malformed identifier, permission string or token encoding."""

    pass


class MalformedTokenError(InvalidArgumentError):
    """A one-time token could not be decoded from its external form."""

    pass


class UnauthenticatedError(IdplaneError):
    """The caller could not be authenticated.

    Covers bad credentials as well as invalid or expired session and
    one-time tokens.
    """

    pass


class InvalidCredentialsError(UnauthenticatedError):
    """Email/password combination did not match."""

    def __init__(self, message: str = "Invalid credentials") -> None:
        """Initialize with a message that does not reveal which part failed."""
        super().__init__(message)


class AccountNotActiveError(UnauthenticatedError):
    """The account exists but is not allowed to authenticate."""

    def __init__(self, message: str = "User account is not active") -> None:
        """Initialize AccountNotActiveError."""
        super().__init__(message)


class TokenInvalidError(UnauthenticatedError):
    """Token is absent, forged, malformed or used for the wrong purpose.

    Expiry is reported through the TokenExpiredError subclass, but both
    carry the same public message so callers cannot tell which case
    occurred.
    """

    def __init__(self, message: str = "Token is invalid or expired") -> None:
        """Initialize TokenInvalidError."""
        super().__init__(message)


class TokenExpiredError(TokenInvalidError):
    """Token was valid but its expiry instant has passed."""

    pass


class PermissionDeniedError(IdplaneError):
    """The authenticated caller is not allowed to perform the action."""

    pass


class AlreadyExistsError(IdplaneError):
    """A unique value (for example a tenant-scoped email) is already taken."""

    pass


class InternalError(IdplaneError):
    """Unexpected persistence, notification or broker failure."""

    pass


class TokenGenerationError(InternalError):
    """Could not produce a unique one-time token."""

    pass


class NotificationError(InternalError):
    """A notification could not be delivered.

    When raised during token issuance the token has already been stored
    and stays redeemable until it expires. Retrying issuance is safe.
    """

    pass


class EventPublishError(InternalError):
    """A follow-up event could not be published.

    The state change that triggered the event has already been committed
    and is not reverted.
    """

    pass


class PolicyEngineError(IdplaneError):
    """The external policy engine could not produce a decision."""

    pass
