"""Password hashing utilities using bcrypt."""

from typing import Protocol, runtime_checkable

import bcrypt

from idplane.core.exceptions import InvalidArgumentError

# bcrypt only looks at the first 72 bytes of its input
MAX_PASSWORD_BYTES = 72


@runtime_checkable
class PasswordHasher(Protocol):
    """Protocol for one-way password hashing."""

    def hash(self, password: str) -> str:
        """Hash a plain text password."""
        ...

    def verify(self, password: str, hashed: str) -> bool:
        """Check a plain text password against a stored hash."""
        ...


class BcryptPasswordHasher:
    """bcrypt-backed PasswordHasher."""

    def __init__(self, rounds: int = 12) -> None:
        """Initialize the hasher.

        Args:
            rounds: bcrypt cost factor (log2 of the iteration count).
        """
        self._rounds = rounds

    def hash(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain text password

        Returns:
            Bcrypt hash string

        Raises:
            InvalidArgumentError: If the password is empty or too long.
        """
        encoded = password.encode("utf-8")
        if not encoded:
            raise InvalidArgumentError("Password must not be empty")
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise InvalidArgumentError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        salt = bcrypt.gensalt(rounds=self._rounds)
        return bcrypt.hashpw(encoded, salt).decode("utf-8")

    def verify(self, password: str, hashed: str) -> bool:
        """Verify a password against a hash.

        Args:
            password: Plain text password to check
            hashed: Bcrypt hash to check against

        Returns:
            True if password matches hash
        """
        encoded = password.encode("utf-8")
        if not encoded or len(encoded) > MAX_PASSWORD_BYTES:
            return False
        try:
            return bcrypt.checkpw(encoded, hashed.encode("utf-8"))
        except ValueError:
            # Stored value is not a bcrypt hash
            return False
