"""User models and the credential states a user can hold."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PasswordHashMissingError(RuntimeError):
    """A user reached persistence or verification without a password hash.

    This is a programming error: no request path may produce a user whose
    credential is unset or still plaintext at the point it is stored.
    """


class Password:
    """Base for the credential states of a user."""


@dataclass(frozen=True)
class UnsetPassword(Password):
    """No credential has been supplied yet."""


@dataclass(frozen=True)
class PendingPassword(Password):
    """A plaintext secret that still has to be hashed before persistence."""

    plaintext: str = field(repr=False)


@dataclass(frozen=True)
class HashedPassword(Password):
    """A bcrypt hash, the only credential form that is ever stored."""

    hash: str = field(repr=False)


class UpdateResult(str, Enum):
    """Outcome of a version-guarded user update."""

    UPDATED = "updated"
    EDIT_CONFLICT = "edit_conflict"
    DUPLICATE_EMAIL = "duplicate_email"


class User(BaseModel):
    """A registered user.

    ``version`` is read with the row and handed back on every update as a
    precondition; ``password`` is never serialized.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    fname: str
    sname: str = ""
    email: str
    role: str = "user"
    password: Password = Field(default_factory=UnsetPassword, exclude=True, repr=False)
    activated: bool = False
    version: int = 0

    @property
    def password_hash(self) -> str:
        """Return the stored hash, refusing any unhashed credential state."""
        if isinstance(self.password, HashedPassword):
            return self.password.hash
        raise PasswordHashMissingError(
            f"missing password hash for user (state: {type(self.password).__name__})"
        )


USER_COLUMNS = (
    "id, created_at, updated_at, fname, sname, email, password_hash, role, activated, version"
)


def user_from_row(row) -> User:
    """Build a User from an asyncpg record selecting ``USER_COLUMNS``."""
    return User(
        id=row["id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        fname=row["fname"],
        sname=row["sname"],
        email=row["email"],
        role=row["role"],
        password=HashedPassword(row["password_hash"]),
        activated=row["activated"],
        version=row["version"],
    )
