"""JWT session credential issuance and validation."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import jwt
from pydantic import ValidationError

from idplane.core.auth.types import SessionClaims, TokenType
from idplane.core.exceptions import InvalidArgumentError, TokenExpiredError, TokenInvalidError

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE = timedelta(minutes=15)
REFRESH_TOKEN_EXPIRE = timedelta(hours=24)

_REQUIRED_CLAIMS = ["sub", "exp", "iat", "jti"]


class SessionIssuer:
    """Issues and validates stateless, signed session credentials.

    Validation is a pure function of signature and expiry. No storage is
    consulted, so an access token cannot be revoked before it expires.
    """

    def __init__(
        self,
        secret_key: str,
        access_ttl: timedelta = ACCESS_TOKEN_EXPIRE,
        refresh_ttl: timedelta = REFRESH_TOKEN_EXPIRE,
    ) -> None:
        """Initialize the issuer.

        Args:
            secret_key: HMAC signing key.
            access_ttl: Lifetime of access tokens.
            refresh_ttl: Lifetime of refresh tokens.

        Raises:
            InvalidArgumentError: If the secret key is empty.
        """
        if not secret_key:
            raise InvalidArgumentError("JWT secret key must not be empty")
        self._secret_key = secret_key
        self._access_ttl = access_ttl
        self._refresh_ttl = refresh_ttl

    def issue_access(self, user_id: str, tenant_id: str, email: str) -> str:
        """Create a short-lived access token.

        Args:
            user_id: User identifier
            tenant_id: Tenant identifier
            email: User's email address

        Returns:
            Encoded JWT string
        """
        return self._issue(user_id, tenant_id, email, TokenType.ACCESS, self._access_ttl)

    def issue_refresh(self, user_id: str, tenant_id: str, email: str) -> str:
        """Create a long-lived refresh token.

        Args:
            user_id: User identifier
            tenant_id: Tenant identifier
            email: User's email address

        Returns:
            Encoded JWT string
        """
        return self._issue(user_id, tenant_id, email, TokenType.REFRESH, self._refresh_ttl)

    def validate(self, token: str) -> SessionClaims:
        """Decode and validate a JWT token.

        Args:
            token: Encoded JWT string

        Returns:
            Decoded session claims

        Raises:
            TokenExpiredError: If the token is past its expiry.
            TokenInvalidError: On bad signature, unexpected algorithm or
                structural decode failure.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[ALGORITHM],
                options={"require": _REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError() from None
        except jwt.InvalidTokenError:
            raise TokenInvalidError() from None

        try:
            return SessionClaims(
                user_id=payload["sub"],
                tenant_id=payload["tenant_id"],
                email=payload["email"],
                token_type=TokenType(payload.get("type", TokenType.ACCESS.value)),
                jti=payload["jti"],
                iat=payload["iat"],
                exp=payload["exp"],
            )
        except (KeyError, ValueError, ValidationError):
            raise TokenInvalidError() from None

    def _issue(
        self,
        user_id: str,
        tenant_id: str,
        email: str,
        token_type: TokenType,
        ttl: timedelta,
    ) -> str:
        now = datetime.now(UTC)
        expire = now + ttl

        payload = {
            "sub": user_id,
            "tenant_id": tenant_id,
            "email": email,
            "type": token_type.value,
            "jti": str(uuid4()),
            "exp": int(expire.timestamp()),
            "iat": int(now.timestamp()),
        }

        return jwt.encode(payload, self._secret_key, algorithm=ALGORITHM)
