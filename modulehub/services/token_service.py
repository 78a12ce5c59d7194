"""Token authority for scoped, expiring, single-subject tokens."""

import base64
import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog

from modulehub.database import get_pool, rows_affected
from modulehub.models.token import IssuedToken, Token, TokenScope
from modulehub.models.user import User, user_from_row

logger = structlog.get_logger(__name__)

TOKEN_ENTROPY_BYTES = 16


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_plaintext() -> str:
    """Return 16 random bytes encoded as unpadded base32 (26 characters)."""
    raw = secrets.token_bytes(TOKEN_ENTROPY_BYTES)
    return base64.b32encode(raw).decode("ascii").rstrip("=")


def hash_token(plaintext: str) -> str:
    """SHA-256 digest of a token plaintext, the only form that is stored."""
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


class TokenService:
    """Issues, resolves and revokes scoped tokens.

    Plaintexts leave this service exactly once, from ``issue``; every later
    lookup goes through the hash.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or _utc_now

    async def issue(
        self, user_id: int, ttl: timedelta, scope: TokenScope, conn=None
    ) -> IssuedToken:
        """Generate a token for a user and store its hash.

        Args:
            user_id: Owning user id
            ttl: Time until the token expires
            scope: Operation family the token is valid for
            conn: Optional connection to run on, e.g. inside a caller's transaction

        Returns:
            IssuedToken carrying the one-time plaintext and the stored record
        """
        if conn is None:
            pool = await get_pool()
            async with pool.acquire() as conn:
                issued = await self._insert(conn, user_id, ttl, scope)
        else:
            issued = await self._insert(conn, user_id, ttl, scope)

        logger.info(
            "token_issued",
            user_id=user_id,
            scope=scope.value,
            expiry=issued.token.expiry.isoformat(),
        )
        return issued

    async def resolve(self, scope: TokenScope, plaintext: str) -> Optional[User]:
        """Find the user owning a live token of the given scope.

        Expired, wrong-scope and never-issued tokens all return None.
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT u.id, u.created_at, u.updated_at, u.fname, u.sname, u.email,
                       u.password_hash, u.role, u.activated, u.version
                FROM users u
                INNER JOIN tokens t ON u.id = t.user_id
                WHERE t.hash = $1
                AND t.scope = $2
                AND t.expiry > $3
                """,
                hash_token(plaintext),
                scope.value,
                self._clock(),
            )

        if row is None:
            logger.debug("token_not_resolved", scope=scope.value)
            return None

        return user_from_row(row)

    async def revoke_all(self, user_id: int, scope: TokenScope) -> int:
        """Delete every token of a scope for a user.

        Returns:
            Number of tokens deleted
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM tokens WHERE scope = $1 AND user_id = $2",
                scope.value,
                user_id,
            )

        revoked = rows_affected(result)
        logger.info("tokens_revoked", user_id=user_id, scope=scope.value, count=revoked)
        return revoked

    async def reissue(self, user_id: int, ttl: timedelta, scope: TokenScope) -> IssuedToken:
        """Revoke all tokens of a scope and issue a replacement in one transaction."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            async with conn.transaction():
                result = await conn.execute(
                    "DELETE FROM tokens WHERE scope = $1 AND user_id = $2",
                    scope.value,
                    user_id,
                )
                issued = await self._insert(conn, user_id, ttl, scope)

        logger.info(
            "token_reissued",
            user_id=user_id,
            scope=scope.value,
            revoked=rows_affected(result),
            expiry=issued.token.expiry.isoformat(),
        )
        return issued

    async def _insert(self, conn, user_id: int, ttl: timedelta, scope: TokenScope) -> IssuedToken:
        plaintext = generate_plaintext()
        token = Token(
            hash=hash_token(plaintext),
            user_id=user_id,
            scope=scope,
            expiry=self._clock() + ttl,
        )

        await conn.execute(
            """
            INSERT INTO tokens (hash, user_id, scope, expiry)
            VALUES ($1, $2, $3, $4)
            """,
            token.hash,
            token.user_id,
            token.scope.value,
            token.expiry,
        )

        return IssuedToken(plaintext=plaintext, token=token)
