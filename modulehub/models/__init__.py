"""Models package exports."""

from modulehub.models.module_info import ModuleInfo, ModuleInfoRequest
from modulehub.models.token import IssuedToken, Token, TokenScope
from modulehub.models.user import (
    HashedPassword,
    Password,
    PasswordHashMissingError,
    PendingPassword,
    UnsetPassword,
    UpdateResult,
    User,
)

__all__ = [
    "HashedPassword",
    "IssuedToken",
    "ModuleInfo",
    "ModuleInfoRequest",
    "Password",
    "PasswordHashMissingError",
    "PendingPassword",
    "Token",
    "TokenScope",
    "UnsetPassword",
    "UpdateResult",
    "User",
]
