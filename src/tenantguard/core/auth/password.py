"""Password hashing using bcrypt."""

from typing import Protocol, runtime_checkable

import bcrypt


@runtime_checkable
class PasswordHasher(Protocol):
    """Hashes and verifies passwords."""

    def hash(self, password: str) -> str:
        """Hash a plain text password."""
        ...

    def verify(self, password: str, hashed: str) -> bool:
        """Check a plain text password against a stored hash."""
        ...


class BcryptPasswordHasher:
    """Bcrypt implementation of PasswordHasher."""

    def __init__(self, rounds: int = 12) -> None:
        """Initialize the hasher.

        Args:
            rounds: Bcrypt cost factor.
        """
        self._rounds = rounds

    def hash(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain text password

        Returns:
            Bcrypt hash string
        """
        salt = bcrypt.gensalt(rounds=self._rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify(self, password: str, hashed: str) -> bool:
        """Verify a password against a hash.

        Returns:
            True if password matches hash
        """
        if not password or not hashed:
            return False
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
