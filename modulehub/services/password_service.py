"""Password hashing and verification."""

from functools import lru_cache

import bcrypt
import structlog

from modulehub.config import get_settings
from modulehub.models.user import (
    HashedPassword,
    Password,
    PasswordHashMissingError,
    PendingPassword,
)

logger = structlog.get_logger(__name__)

MAX_PASSWORD_BYTES = 72


class CorruptPasswordHashError(ValueError):
    """The stored hash could not be used for comparison at all."""


@lru_cache
def _decoy_hash(rounds: int) -> bytes:
    """A throwaway hash at the configured cost, built once per cost."""
    return bcrypt.hashpw(b"modulehub-decoy-password", bcrypt.gensalt(rounds=rounds))


class PasswordService:
    """Service for the one-way, salted, adaptive-cost credential hash."""

    def __init__(self):
        self.settings = get_settings()

    def set(self, plaintext: str) -> HashedPassword:
        """Hash a plain-text password with bcrypt.

        Args:
            plaintext: Password to hash (at most 72 bytes)

        Returns:
            HashedPassword holding the bcrypt hash string

        Raises:
            ValueError: If the password exceeds bcrypt's 72-byte limit
        """
        password_bytes = plaintext.encode("utf-8")
        if len(password_bytes) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be <= {MAX_PASSWORD_BYTES} bytes for bcrypt")
        salt = bcrypt.gensalt(rounds=self.settings.bcrypt_rounds)
        hashed = bcrypt.hashpw(password_bytes, salt)
        return HashedPassword(hashed.decode("utf-8"))

    def seal(self, password: Password) -> HashedPassword:
        """Turn a pending plaintext into its hash; pass hashes through."""
        if isinstance(password, HashedPassword):
            return password
        if isinstance(password, PendingPassword):
            return self.set(password.plaintext)
        raise PasswordHashMissingError("cannot seal an unset password")

    def matches(self, plaintext: str, password: Password) -> bool:
        """Check a candidate password against a stored hash.

        Args:
            plaintext: Candidate password
            password: The user's stored credential

        Returns:
            True if the password matches, False otherwise

        Raises:
            PasswordHashMissingError: If the credential holds no hash
            CorruptPasswordHashError: If the stored hash is malformed
        """
        if not isinstance(password, HashedPassword):
            raise PasswordHashMissingError("cannot verify against an unhashed password")

        password_bytes = plaintext.encode("utf-8")
        if len(password_bytes) > MAX_PASSWORD_BYTES:
            return False

        try:
            return bcrypt.checkpw(password_bytes, password.hash.encode("utf-8"))
        except ValueError as e:
            logger.error("password_hash_corrupt", error=str(e))
            raise CorruptPasswordHashError("stored password hash is malformed") from e

    def burn(self, plaintext: str) -> None:
        """Spend one comparison's worth of bcrypt work and discard the result.

        Used when there is no stored hash to check against, so a lookup
        miss costs the same as a wrong password.
        """
        password_bytes = plaintext.encode("utf-8")[:MAX_PASSWORD_BYTES]
        bcrypt.checkpw(password_bytes, _decoy_hash(self.settings.bcrypt_rounds))
