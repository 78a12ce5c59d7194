"""Auth and user request/response models with validation."""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from modulehub.models.user import User

EMAIL_RX = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

MIN_PASSWORD_BYTES = 8
MAX_PASSWORD_BYTES = 72  # bcrypt limit
TOKEN_PLAINTEXT_LENGTH = 26  # 16 random bytes, base32 without padding


def _check_email(v: str) -> str:
    if not EMAIL_RX.match(v):
        raise ValueError("must be a valid email address")
    return v


def _check_password(v: str) -> str:
    if not v.strip():
        raise ValueError("Password cannot be empty or whitespace only")
    size = len(v.encode("utf-8"))
    if size < MIN_PASSWORD_BYTES:
        raise ValueError(f"must be at least {MIN_PASSWORD_BYTES} bytes long")
    if size > MAX_PASSWORD_BYTES:
        raise ValueError(f"must not be more than {MAX_PASSWORD_BYTES} bytes long")
    return v


class RegisterRequest(BaseModel):
    """New account registration.

    Attributes:
        fname: First name (1-500 chars)
        sname: Surname (max 500 chars)
        email: Email address, unique across all users
        password: Password (8-72 bytes)
    """

    fname: str = Field(..., min_length=1, max_length=500)
    sname: str = Field(default="", max_length=500)
    email: str = Field(..., max_length=320)
    password: str

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        """Ensure the email address is well formed."""
        return _check_email(v)

    @field_validator("password")
    @classmethod
    def password_valid(cls, v: str) -> str:
        """Ensure the password fits bcrypt's byte limits."""
        return _check_password(v)


class ActivateRequest(BaseModel):
    """Activation token presented back verbatim."""

    token: str

    @field_validator("token")
    @classmethod
    def token_well_formed(cls, v: str) -> str:
        """Ensure the token has the length of an issued plaintext."""
        if len(v) != TOKEN_PLAINTEXT_LENGTH:
            raise ValueError(f"must be {TOKEN_PLAINTEXT_LENGTH} bytes long")
        return v


class AuthenticationRequest(BaseModel):
    """Credentials exchanged for an authentication token."""

    email: str
    password: str

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        """Ensure the email address is well formed."""
        return _check_email(v)

    @field_validator("password")
    @classmethod
    def password_valid(cls, v: str) -> str:
        """Ensure the password fits bcrypt's byte limits."""
        return _check_password(v)


class UpdateUserRequest(BaseModel):
    """Request to edit an existing user's profile.

    All fields are optional; only provided fields are updated.
    """

    fname: Optional[str] = Field(default=None, min_length=1, max_length=500)
    sname: Optional[str] = Field(default=None, max_length=500)
    email: Optional[str] = Field(default=None, max_length=320)
    password: Optional[str] = None

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: Optional[str]) -> Optional[str]:
        """Ensure the email address is well formed when provided."""
        if v is None:
            return v
        return _check_email(v)

    @field_validator("password")
    @classmethod
    def password_valid(cls, v: Optional[str]) -> Optional[str]:
        """Ensure the password fits bcrypt's byte limits when provided."""
        if v is None:
            return v
        return _check_password(v)


class UserSummary(BaseModel):
    """User representation for API responses. Never carries the credential."""

    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    fname: str
    sname: str
    email: str
    role: str
    activated: bool
    version: int

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            created_at=user.created_at,
            updated_at=user.updated_at,
            fname=user.fname,
            sname=user.sname,
            email=user.email,
            role=user.role,
            activated=user.activated,
            version=user.version,
        )


class AuthenticationToken(BaseModel):
    """Plaintext authentication token, disclosed once."""

    token: str
    expiry: datetime
