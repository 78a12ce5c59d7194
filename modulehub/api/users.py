"""User registration, activation and management endpoints."""

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
import structlog

from modulehub.api.dependencies import require_activated_user
from modulehub.config import get_settings
from modulehub.database import get_pool
from modulehub.models.auth import (
    ActivateRequest,
    RegisterRequest,
    UpdateUserRequest,
    UserSummary,
)
from modulehub.models.token import TokenScope
from modulehub.models.user import PendingPassword, UpdateResult, User
from modulehub.services.email_service import EmailService
from modulehub.services.password_service import PasswordService
from modulehub.services.token_service import TokenService
from modulehub.services.user_service import DuplicateEmailError, UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/v1", tags=["Users"])

DUPLICATE_EMAIL_DETAIL = {"email": "a user with this email address already exists"}
EDIT_CONFLICT_DETAIL = "unable to update the record due to an edit conflict, please try again"
NOT_FOUND_DETAIL = "the requested resource could not be found"


def _raise_for_update(result: UpdateResult) -> None:
    """Map a non-successful update outcome to its HTTP error."""
    if result is UpdateResult.EDIT_CONFLICT:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=EDIT_CONFLICT_DETAIL)
    if result is UpdateResult.DUPLICATE_EMAIL:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=DUPLICATE_EMAIL_DETAIL,
        )


@router.post("/users", status_code=status.HTTP_202_ACCEPTED)
async def register_user(request: RegisterRequest) -> dict:
    """Register a new, unactivated user and email them an activation token.

    The user row and its first activation token are written in one
    transaction; a user is never stored without a token to activate with.

    Raises:
        HTTPException 422: If the email address is already registered
    """
    settings = get_settings()

    user = User(
        fname=request.fname,
        sname=request.sname,
        email=request.email,
        password=PendingPassword(request.password),
        activated=False,
    )
    user.password = PasswordService().seal(user.password)

    pool = await get_pool()

    try:
        async with pool.acquire() as conn:
            async with conn.transaction():
                user = await UserService().insert(user, conn=conn)
                issued = await TokenService().issue(
                    user.id,
                    timedelta(seconds=settings.activation_token_ttl_seconds),
                    TokenScope.ACTIVATION,
                    conn=conn,
                )
    except DuplicateEmailError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=DUPLICATE_EMAIL_DETAIL,
        )

    EmailService().dispatch_welcome(user.id, user.email, issued.plaintext)

    logger.info("user_registered", user_id=user.id)
    return {"user": UserSummary.from_user(user)}


@router.put("/users/activated")
async def activate_user(request: ActivateRequest) -> dict:
    """Activate the account owning a live activation token.

    Raises:
        HTTPException 422: If the token is invalid or expired
        HTTPException 409: If the user was modified concurrently
    """
    token_service = TokenService()

    user = await token_service.resolve(TokenScope.ACTIVATION, request.token)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"token": "invalid or expired activation token"},
        )

    user.activated = True
    result = await UserService().update(user)
    _raise_for_update(result)

    # Activation is already committed; leftover tokens only re-activate and expire
    try:
        await token_service.revoke_all(user.id, TokenScope.ACTIVATION)
    except Exception as e:
        logger.error("activation_token_revoke_failed", user_id=user.id, error=str(e))

    logger.info("user_activated", user_id=user.id)
    return {"user": UserSummary.from_user(user)}


@router.get("/users/get")
async def list_users(current_user: User = Depends(require_activated_user)) -> dict:
    """List all users."""
    users = await UserService().list_users()
    return {"user_infos": [UserSummary.from_user(u) for u in users]}


@router.get("/users/get/{user_id}")
async def get_user(
    user_id: int,
    current_user: User = Depends(require_activated_user),
) -> dict:
    """Show a single user.

    Raises:
        HTTPException 404: If the user does not exist
    """
    user = await UserService().get(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)
    return {"user_info": UserSummary.from_user(user)}


@router.put("/users/edit/{user_id}")
async def edit_user(
    user_id: int,
    request: UpdateUserRequest,
    current_user: User = Depends(require_activated_user),
) -> dict:
    """Edit a user's profile. Only provided fields change.

    The write is guarded by the version read at the start of this request;
    a concurrent edit in between yields 409 and the client should retry.

    Raises:
        HTTPException 404: If the user does not exist
        HTTPException 409: On an edit conflict
        HTTPException 422: If the new email is already registered
    """
    user_service = UserService()

    user = await user_service.get(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)

    if request.fname is not None:
        user.fname = request.fname
    if request.sname is not None:
        user.sname = request.sname
    if request.email is not None:
        user.email = request.email
    if request.password is not None:
        user.password = PasswordService().set(request.password)

    result = await user_service.update(user)
    _raise_for_update(result)

    logger.info("user_edited", editor_id=current_user.id, user_id=user.id)
    return {"user_info": UserSummary.from_user(user)}


@router.delete("/users/delete/{user_id}")
async def delete_user(
    user_id: int,
    current_user: User = Depends(require_activated_user),
) -> dict:
    """Delete a user.

    Raises:
        HTTPException 404: If the user does not exist
    """
    deleted = await UserService().delete(user_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)

    logger.info("user_removed", editor_id=current_user.id, user_id=user_id)
    return {"message": "user successfully deleted"}
