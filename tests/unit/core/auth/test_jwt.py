"""Tests for session credential issuance and validation."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
import pytest

from idplane.core.auth.jwt import ALGORITHM, SessionIssuer
from idplane.core.auth.types import TokenType
from idplane.core.exceptions import InvalidArgumentError, TokenExpiredError, TokenInvalidError

SECRET = "test-secret-key"  # pragma: allowlist secret


class TestSessionIssuer:
    """Tests for SessionIssuer."""

    @pytest.fixture
    def issuer(self) -> SessionIssuer:
        """Return an issuer."""
        return SessionIssuer(SECRET)

    @pytest.fixture
    def user_id(self) -> str:
        """Return a sample user ID."""
        return str(uuid.uuid4())

    @pytest.fixture
    def tenant_id(self) -> str:
        """Return a sample tenant ID."""
        return str(uuid.uuid4())

    def test_access_token_round_trip(
        self, issuer: SessionIssuer, user_id: str, tenant_id: str
    ) -> None:
        """Validating an access token returns its claims."""
        token = issuer.issue_access(user_id, tenant_id, "a@x.com")

        claims = issuer.validate(token)

        assert claims.user_id == user_id
        assert claims.tenant_id == tenant_id
        assert claims.email == "a@x.com"
        assert claims.token_type == TokenType.ACCESS

    def test_refresh_token_type(self, issuer: SessionIssuer, user_id: str, tenant_id: str) -> None:
        """Refresh tokens carry the refresh type."""
        token = issuer.issue_refresh(user_id, tenant_id, "a@x.com")

        assert issuer.validate(token).token_type == TokenType.REFRESH

    def test_access_expires_before_refresh(
        self, issuer: SessionIssuer, user_id: str, tenant_id: str
    ) -> None:
        """Default access lifetime is shorter than refresh lifetime."""
        access = issuer.validate(issuer.issue_access(user_id, tenant_id, "a@x.com"))
        refresh = issuer.validate(issuer.issue_refresh(user_id, tenant_id, "a@x.com"))

        assert access.exp - access.iat == 15 * 60
        assert refresh.exp - refresh.iat == 24 * 3600

    def test_each_token_has_unique_jti(
        self, issuer: SessionIssuer, user_id: str, tenant_id: str
    ) -> None:
        """Two tokens for the same user differ by jti."""
        first = issuer.validate(issuer.issue_access(user_id, tenant_id, "a@x.com"))
        second = issuer.validate(issuer.issue_access(user_id, tenant_id, "a@x.com"))

        assert first.jti != second.jti

    def test_expired_token(self, user_id: str, tenant_id: str) -> None:
        """Tokens past their expiry raise TokenExpiredError."""
        issuer = SessionIssuer(SECRET, access_ttl=timedelta(seconds=-10))
        token = issuer.issue_access(user_id, tenant_id, "a@x.com")

        with pytest.raises(TokenExpiredError):
            issuer.validate(token)

    def test_wrong_key(self, user_id: str, tenant_id: str) -> None:
        """Tokens signed with another key are rejected."""
        token = SessionIssuer("other-secret").issue_access(user_id, tenant_id, "a@x.com")

        with pytest.raises(TokenInvalidError):
            SessionIssuer(SECRET).validate(token)

    def test_unexpected_algorithm_rejected(self, user_id: str, tenant_id: str) -> None:
        """Only the configured algorithm is accepted."""
        now = datetime.now(UTC)
        token = jwt.encode(
            {
                "sub": user_id,
                "tenant_id": tenant_id,
                "email": "a@x.com",
                "type": "access",
                "jti": "j",
                "iat": int(now.timestamp()),
                "exp": int((now + timedelta(minutes=5)).timestamp()),
            },
            SECRET,
            algorithm="HS512",
        )
        assert ALGORITHM != "HS512"

        with pytest.raises(TokenInvalidError):
            SessionIssuer(SECRET).validate(token)

    def test_missing_claim_rejected(self, user_id: str) -> None:
        """Structurally incomplete tokens are rejected."""
        now = datetime.now(UTC)
        token = jwt.encode(
            {
                "sub": user_id,
                "jti": "j",
                "iat": int(now.timestamp()),
                "exp": int((now + timedelta(minutes=5)).timestamp()),
            },
            SECRET,
            algorithm=ALGORITHM,
        )

        with pytest.raises(TokenInvalidError):
            SessionIssuer(SECRET).validate(token)

    def test_garbage_rejected(self, issuer: SessionIssuer) -> None:
        """Random strings are rejected."""
        with pytest.raises(TokenInvalidError):
            issuer.validate("not.a.jwt")

    def test_expired_is_a_token_invalid_error(self, user_id: str, tenant_id: str) -> None:
        """Callers catching TokenInvalidError also catch expiry."""
        issuer = SessionIssuer(SECRET, access_ttl=timedelta(seconds=-10))

        with pytest.raises(TokenInvalidError) as exc_info:
            issuer.validate(issuer.issue_access(user_id, tenant_id, "a@x.com"))

        assert str(exc_info.value) == str(TokenInvalidError())

    def test_empty_secret_rejected(self) -> None:
        """An issuer needs a signing key."""
        with pytest.raises(InvalidArgumentError):
            SessionIssuer("")
