"""User repository with optimistic concurrency control."""

from datetime import datetime, timezone
from typing import Optional

import asyncpg
import structlog

from modulehub.database import get_pool, rows_affected
from modulehub.models.token import TokenScope
from modulehub.models.user import USER_COLUMNS, UpdateResult, User, user_from_row

logger = structlog.get_logger(__name__)

EMAIL_UNIQUE_CONSTRAINT = "users_email_key"


class DuplicateEmailError(Exception):
    """A user with this email address already exists."""

    def __init__(self, email: str):
        super().__init__(f"duplicate email: {email}")
        self.email = email


def _is_duplicate_email(error: asyncpg.UniqueViolationError) -> bool:
    return getattr(error, "constraint_name", None) == EMAIL_UNIQUE_CONSTRAINT


class UserService:
    """Service for user reads and version-guarded writes."""

    async def insert(self, user: User, conn=None) -> User:
        """Insert a new user and fill in its generated fields.

        Args:
            user: User holding a hashed password
            conn: Optional connection to run on, e.g. inside a caller's transaction

        Returns:
            The same User with id, timestamps and version populated

        Raises:
            DuplicateEmailError: If the email is already registered
            PasswordHashMissingError: If the user's password was never hashed
        """
        password_hash = user.password_hash

        if conn is None:
            pool = await get_pool()
            async with pool.acquire() as conn:
                return await self._insert(conn, user, password_hash)

        return await self._insert(conn, user, password_hash)

    async def _insert(self, conn, user: User, password_hash: str) -> User:
        now = datetime.now(timezone.utc)

        try:
            row = await conn.fetchrow(
                """
                INSERT INTO users (fname, sname, email, password_hash, role, activated, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $7)
                RETURNING id, created_at, updated_at, version
                """,
                user.fname,
                user.sname,
                user.email,
                password_hash,
                user.role,
                user.activated,
                now,
            )
        except asyncpg.UniqueViolationError as e:
            if _is_duplicate_email(e):
                logger.info("user_insert_duplicate_email")
                raise DuplicateEmailError(user.email) from e
            raise

        user.id = row["id"]
        user.created_at = row["created_at"]
        user.updated_at = row["updated_at"]
        user.version = row["version"]

        logger.info("user_inserted", user_id=user.id)
        return user

    async def get(self, user_id: int) -> Optional[User]:
        """Get a user by id.

        Ids below 1 are rejected without touching the database.

        Returns:
            User model or None if not found
        """
        if user_id < 1:
            return None

        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )

        if row is None:
            return None

        return user_from_row(row)

    async def get_by_email(self, email: str) -> Optional[User]:
        """Get a user by email address (case-insensitive)."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE email = $1",
                email,
            )

        if row is None:
            return None

        return user_from_row(row)

    async def list_users(self) -> list[User]:
        """Return all users ordered by id."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(f"SELECT {USER_COLUMNS} FROM users ORDER BY id ASC")

        return [user_from_row(row) for row in rows]

    async def update(self, user: User) -> UpdateResult:
        """Write all mutable fields, guarded by the version the caller read.

        On success the user's ``version`` and ``updated_at`` are refreshed in
        place. A stale version returns ``UpdateResult.EDIT_CONFLICT``; the
        caller decides whether to re-fetch and retry.

        Raises:
            PasswordHashMissingError: If the user's password was never hashed
        """
        password_hash = user.password_hash
        now = datetime.now(timezone.utc)

        pool = await get_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    UPDATE users
                    SET fname = $1, sname = $2, email = $3, password_hash = $4,
                        activated = $5, updated_at = $6, version = version + 1
                    WHERE id = $7 AND version = $8
                    RETURNING version, updated_at
                    """,
                    user.fname,
                    user.sname,
                    user.email,
                    password_hash,
                    user.activated,
                    now,
                    user.id,
                    user.version,
                )
        except asyncpg.UniqueViolationError as e:
            if _is_duplicate_email(e):
                logger.info("user_update_duplicate_email", user_id=user.id)
                return UpdateResult.DUPLICATE_EMAIL
            raise

        if row is None:
            logger.warning("user_edit_conflict", user_id=user.id, version=user.version)
            return UpdateResult.EDIT_CONFLICT

        user.version = row["version"]
        user.updated_at = row["updated_at"]

        logger.info("user_updated", user_id=user.id, version=user.version)
        return UpdateResult.UPDATED

    async def delete(self, user_id: int) -> bool:
        """Hard-delete a user. Their tokens cascade with them.

        Returns:
            True if the user was deleted, False if not found
        """
        if user_id < 1:
            return False

        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute("DELETE FROM users WHERE id = $1", user_id)

        deleted = rows_affected(result) == 1

        if deleted:
            logger.info("user_deleted", user_id=user_id)
        else:
            logger.warning("user_delete_not_found", user_id=user_id)

        return deleted

    async def find_unactivated_expired(self, cutoff: datetime) -> list[User]:
        """Find unactivated users whose newest activation token expired before cutoff.

        Users holding any live activation token are excluded, as are users
        that only hold tokens of other scopes.
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT u.id, u.created_at, u.updated_at, u.fname, u.sname, u.email,
                       u.password_hash, u.role, u.activated, u.version
                FROM users u
                INNER JOIN tokens t ON u.id = t.user_id AND t.scope = $1
                WHERE u.activated = FALSE
                GROUP BY u.id
                HAVING MAX(t.expiry) < $2
                ORDER BY u.id ASC
                """,
                TokenScope.ACTIVATION.value,
                cutoff,
            )

        return [user_from_row(row) for row in rows]
