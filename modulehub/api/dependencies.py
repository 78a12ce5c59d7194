"""FastAPI dependencies for bearer-token authentication."""

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from modulehub.models.auth import TOKEN_PLAINTEXT_LENGTH
from modulehub.models.token import TokenScope
from modulehub.models.user import User
from modulehub.services.token_service import TokenService

bearer_scheme = HTTPBearer(auto_error=False)


def _invalid_token() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="invalid or missing authentication token",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[User]:
    """Resolve the Bearer token to a user; None for anonymous requests.

    Raises:
        HTTPException 401: If a token is supplied but is malformed, unknown
            or expired
    """
    if credentials is None:
        return None

    token = credentials.credentials
    if len(token) != TOKEN_PLAINTEXT_LENGTH:
        raise _invalid_token()

    user = await TokenService().resolve(TokenScope.AUTHENTICATION, token)
    if user is None:
        raise _invalid_token()

    return user


async def require_authenticated_user(
    current_user: Optional[User] = Depends(get_current_user),
) -> User:
    """Reject anonymous requests.

    Raises:
        HTTPException 401: If no token was supplied
    """
    if current_user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="you must be authenticated to access this resource",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return current_user


async def require_activated_user(
    current_user: User = Depends(require_authenticated_user),
) -> User:
    """Require the current user to have completed activation.

    Raises:
        HTTPException 403: If the account is not activated yet
    """
    if not current_user.activated:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="your user account must be activated to access this resource",
        )
    return current_user
