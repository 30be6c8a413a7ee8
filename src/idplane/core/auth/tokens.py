"""Secure one-time token generation for setup, invitation and reset flows."""

import base64
import binascii
import hashlib
import re
import secrets
from datetime import UTC, datetime, timedelta

from idplane.core.exceptions import MalformedTokenError

# Token configuration
TOKEN_BYTES = 32  # 256 bits of entropy

_URLSAFE_PATTERN = re.compile(r"^[A-Za-z0-9_-]+={0,2}$")


class TokenCodec:
    """Generates opaque one-time tokens and their storage digests.

    The plaintext is the URL-safe base64 form of the random bytes and is
    only ever handed to the user. The digest is the SHA-256 of the raw
    bytes and is what gets persisted. The token carries enough entropy that
    an unsalted fast hash is sufficient for lookup.
    """

    def __init__(self, num_bytes: int = TOKEN_BYTES) -> None:
        """Initialize the codec.

        Args:
            num_bytes: Number of random bytes per token.
        """
        self._num_bytes = num_bytes

    def generate(self) -> tuple[str, bytes]:
        """Generate a new token.

        Returns:
            Tuple of (plaintext, digest).
        """
        raw = secrets.token_bytes(self._num_bytes)
        return self.encode(raw), hashlib.sha256(raw).digest()

    def digest(self, plaintext: str) -> bytes:
        """Compute the storage digest for a plaintext token.

        Args:
            plaintext: Token as delivered to the user.

        Returns:
            SHA-256 digest of the decoded token bytes.

        Raises:
            MalformedTokenError: If the plaintext is not valid URL-safe base64.
        """
        return hashlib.sha256(self.decode(plaintext)).digest()

    @staticmethod
    def encode(raw: bytes) -> str:
        """Encode raw token bytes as unpadded URL-safe base64."""
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")

    @staticmethod
    def decode(plaintext: str) -> bytes:
        """Decode the external representation back into raw bytes."""
        if not plaintext or not _URLSAFE_PATTERN.match(plaintext):
            raise MalformedTokenError("Invalid token format")

        padded = plaintext.rstrip("=")
        padded += "=" * (-len(padded) % 4)
        try:
            return base64.urlsafe_b64decode(padded)
        except (binascii.Error, ValueError):
            raise MalformedTokenError("Invalid token format") from None


def token_expiry(ttl: timedelta) -> datetime:
    """Calculate the expiry instant for a token issued now.

    Args:
        ttl: How long the token stays redeemable.

    Returns:
        UTC datetime when the token expires.
    """
    return datetime.now(UTC) + ttl


def is_token_expired(expiry: datetime, now: datetime | None = None) -> bool:
    """Check if a token has expired.

    A token whose expiry equals the current instant is already expired.

    Args:
        expiry: The token's expiry timestamp.
        now: Reference instant, defaults to the current time.

    Returns:
        True if the token has expired.
    """
    now = now or datetime.now(UTC)
    # Handle timezone-naive datetimes
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=UTC)
    return expiry <= now
