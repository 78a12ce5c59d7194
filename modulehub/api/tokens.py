"""Authentication token endpoint."""

from datetime import timedelta

from fastapi import APIRouter, HTTPException, status
import structlog

from modulehub.config import get_settings
from modulehub.models.auth import AuthenticationRequest, AuthenticationToken
from modulehub.models.token import TokenScope
from modulehub.services.password_service import PasswordService
from modulehub.services.token_service import TokenService
from modulehub.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/v1/tokens", tags=["Tokens"])


@router.post("/authentication", status_code=status.HTTP_201_CREATED)
async def create_authentication_token(request: AuthenticationRequest) -> dict:
    """Exchange email and password for a bearer authentication token.

    Unknown email and wrong password get the same response and cost the
    same bcrypt work.

    Raises:
        HTTPException 401: If the credentials are invalid
    """
    settings = get_settings()

    password_service = PasswordService()

    user = await UserService().get_by_email(request.email)
    if user is None:
        password_service.burn(request.password)
    if user is None or not password_service.matches(request.password, user.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid authentication credentials",
        )

    issued = await TokenService().issue(
        user.id,
        timedelta(seconds=settings.authentication_token_ttl_seconds),
        TokenScope.AUTHENTICATION,
    )

    logger.info("authentication_token_created", user_id=user.id)
    return {
        "authentication_token": AuthenticationToken(
            token=issued.plaintext,
            expiry=issued.token.expiry,
        )
    }
