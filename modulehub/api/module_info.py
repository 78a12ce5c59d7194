"""Module metadata endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Response, status
import structlog

from modulehub.api.dependencies import require_activated_user
from modulehub.models.module_info import ModuleInfoRequest
from modulehub.models.user import User
from modulehub.services.module_info_service import ModuleInfoService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/v1/info", tags=["Module info"])

NOT_FOUND_DETAIL = "the requested resource could not be found"


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_module_info(
    request: ModuleInfoRequest,
    response: Response,
    current_user: User = Depends(require_activated_user),
) -> dict:
    module = await ModuleInfoService().create(request)
    response.headers["Location"] = f"/v1/info/{module.id}"
    return {"module_info": module}


@router.get("")
async def list_module_info(current_user: User = Depends(require_activated_user)) -> dict:
    modules = await ModuleInfoService().list_modules()
    return {"module_info": modules}


@router.get("/{module_id}")
async def get_module_info(
    module_id: int,
    current_user: User = Depends(require_activated_user),
) -> dict:
    module = await ModuleInfoService().get(module_id)
    if module is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)
    return {"module_info": module}


@router.put("/{module_id}")
async def update_module_info(
    module_id: int,
    request: ModuleInfoRequest,
    current_user: User = Depends(require_activated_user),
) -> dict:
    module = await ModuleInfoService().update(module_id, request)
    if module is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)
    return {"module_info": module}


@router.delete("/{module_id}")
async def delete_module_info(
    module_id: int,
    current_user: User = Depends(require_activated_user),
) -> dict:
    deleted = await ModuleInfoService().delete(module_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)

    logger.info("module_info_removed", user_id=current_user.id, module_id=module_id)
    return {"message": "module_info successfully deleted"}
