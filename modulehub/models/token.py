"""Scoped token models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class TokenScope(str, Enum):
    """Operation family a token is restricted to."""

    ACTIVATION = "activation"
    AUTHENTICATION = "authentication"


class Token(BaseModel):
    """A persisted token. Only the hash of the plaintext is ever stored."""

    hash: str
    user_id: int
    scope: TokenScope
    expiry: datetime


@dataclass(frozen=True)
class IssuedToken:
    """A freshly issued token together with its one-time plaintext."""

    plaintext: str = field(repr=False)
    token: Token
