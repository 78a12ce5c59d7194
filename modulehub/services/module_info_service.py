"""Module metadata CRUD."""

from typing import Optional

import structlog

from modulehub.database import get_pool, rows_affected
from modulehub.models.module_info import ModuleInfo, ModuleInfoRequest

logger = structlog.get_logger(__name__)

_COLUMNS = "id, created_at, updated_at, module_name, module_duration, exam_type, version"


def _module_from_row(row) -> ModuleInfo:
    return ModuleInfo(
        id=row["id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        module_name=row["module_name"],
        module_duration=row["module_duration"],
        exam_type=row["exam_type"],
        version=row["version"],
    )


class ModuleInfoService:
    """Service for module_info rows."""

    async def create(self, request: ModuleInfoRequest) -> ModuleInfo:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO module_info (module_name, module_duration, exam_type)
                VALUES ($1, $2, $3)
                RETURNING {_COLUMNS}
                """,
                request.module_name,
                request.module_duration,
                request.exam_type,
            )

        module = _module_from_row(row)
        logger.info("module_info_created", module_id=module.id)
        return module

    async def get(self, module_id: int) -> Optional[ModuleInfo]:
        if module_id < 1:
            return None

        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM module_info WHERE id = $1",
                module_id,
            )

        return _module_from_row(row) if row else None

    async def list_modules(self) -> list[ModuleInfo]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(f"SELECT {_COLUMNS} FROM module_info ORDER BY id ASC")

        return [_module_from_row(row) for row in rows]

    async def update(self, module_id: int, request: ModuleInfoRequest) -> Optional[ModuleInfo]:
        """Replace a module's fields.

        Returns:
            Updated ModuleInfo, or None if not found
        """
        if module_id < 1:
            return None

        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE module_info
                SET module_name = $1, module_duration = $2, exam_type = $3,
                    updated_at = NOW(), version = version + 1
                WHERE id = $4
                RETURNING {_COLUMNS}
                """,
                request.module_name,
                request.module_duration,
                request.exam_type,
                module_id,
            )

        if row is None:
            return None

        logger.info("module_info_updated", module_id=module_id)
        return _module_from_row(row)

    async def delete(self, module_id: int) -> bool:
        if module_id < 1:
            return False

        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute("DELETE FROM module_info WHERE id = $1", module_id)

        deleted = rows_affected(result) == 1
        if deleted:
            logger.info("module_info_deleted", module_id=module_id)
        return deleted
