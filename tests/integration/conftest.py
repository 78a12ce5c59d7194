"""In-memory stand-in for the asyncpg pool used by the identity services.

FakeStore understands exactly the statements UserService and TokenService
issue, keeps users and tokens in dicts, enforces the users_email_key and
token primary-key constraints, cascades user deletes to tokens, and rolls
back on a failed transaction.
"""

import copy
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import asyncpg
import pytest


def _normalize(sql: str) -> str:
    return " ".join(sql.split())


def _unique_violation(constraint_name: str) -> asyncpg.UniqueViolationError:
    error = asyncpg.UniqueViolationError(f'duplicate key value violates unique constraint "{constraint_name}"')
    error.constraint_name = constraint_name
    return error


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class FakeTransaction:
    def __init__(self, store: "FakeStore"):
        self._store = store
        self._snapshot = None

    async def __aenter__(self):
        self._snapshot = self._store.snapshot()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self._store.restore(self._snapshot)
        return False


class FakeConnection:
    def __init__(self, store: "FakeStore"):
        self._store = store

    def transaction(self):
        return FakeTransaction(self._store)

    async def execute(self, sql, *args):
        return self._store.run("execute", sql, args)

    async def fetchrow(self, sql, *args):
        return self._store.run("fetchrow", sql, args)

    async def fetch(self, sql, *args):
        return self._store.run("fetch", sql, args)

    async def fetchval(self, sql, *args):
        return self._store.run("fetchval", sql, args)


class _Acquire:
    def __init__(self, store):
        self._store = store

    async def __aenter__(self):
        return FakeConnection(self._store)

    async def __aexit__(self, *args):
        return False


class FakeStore:
    def __init__(self):
        self.users: dict[int, dict] = {}
        self.tokens: dict[str, dict] = {}
        self._next_id = 1
        self._faults: list[tuple[str, Exception]] = []

    # -- pool surface ------------------------------------------------------

    def acquire(self):
        return _Acquire(self)

    # -- test controls -----------------------------------------------------

    def fail_next(self, fragment: str, error: Exception) -> None:
        """Raise ``error`` from the next statement containing ``fragment``."""
        self._faults.append((fragment, error))

    def snapshot(self):
        return copy.deepcopy((self.users, self.tokens, self._next_id))

    def restore(self, snapshot) -> None:
        self.users, self.tokens, self._next_id = snapshot

    def tokens_for(self, user_id: int, scope: str | None = None) -> list[dict]:
        return [
            t for t in self.tokens.values()
            if t["user_id"] == user_id and (scope is None or t["scope"] == scope)
        ]

    # -- statement dispatch ------------------------------------------------

    def run(self, method, sql, args):
        sql = _normalize(sql)

        for i, (fragment, error) in enumerate(self._faults):
            if fragment in sql:
                del self._faults[i]
                raise error

        if sql == "SELECT 1":
            return 1
        if "INSERT INTO users" in sql:
            return self._insert_user(*args)
        if "UPDATE users" in sql:
            return self._update_user(*args)
        if "DELETE FROM users" in sql:
            return self._delete_user(*args)
        if "GROUP BY u.id" in sql:
            return self._unactivated_expired(*args)
        if "INNER JOIN tokens t ON u.id = t.user_id WHERE t.hash" in sql:
            return self._resolve(*args)
        if "FROM users WHERE id = $1" in sql:
            return self._row(self.users.get(args[0]))
        if "FROM users WHERE email = $1" in sql:
            return self._row(self._by_email(args[0]))
        if "FROM users ORDER BY id" in sql:
            return [self._row(u) for _, u in sorted(self.users.items())]
        if "INSERT INTO tokens" in sql:
            return self._insert_token(*args)
        if "DELETE FROM tokens" in sql:
            return self._delete_tokens(*args)

        raise AssertionError(f"unexpected statement ({method}): {sql}")

    @staticmethod
    def _row(user):
        return dict(user) if user is not None else None

    def _by_email(self, email, exclude_id=None):
        for user in self.users.values():
            if user["email"].lower() == email.lower() and user["id"] != exclude_id:
                return user
        return None

    def _insert_user(self, fname, sname, email, password_hash, role, activated, now):
        if self._by_email(email) is not None:
            raise _unique_violation("users_email_key")

        user = {
            "id": self._next_id,
            "created_at": now,
            "updated_at": now,
            "fname": fname,
            "sname": sname,
            "email": email,
            "password_hash": password_hash,
            "role": role,
            "activated": activated,
            "version": 1,
        }
        self.users[user["id"]] = user
        self._next_id += 1
        return {k: user[k] for k in ("id", "created_at", "updated_at", "version")}

    def _update_user(self, fname, sname, email, password_hash, activated, now, user_id, version):
        user = self.users.get(user_id)
        if user is None or user["version"] != version:
            return None
        if self._by_email(email, exclude_id=user_id) is not None:
            raise _unique_violation("users_email_key")

        user.update(
            fname=fname,
            sname=sname,
            email=email,
            password_hash=password_hash,
            activated=activated,
            updated_at=now,
            version=user["version"] + 1,
        )
        return {"version": user["version"], "updated_at": now}

    def _delete_user(self, user_id):
        if self.users.pop(user_id, None) is None:
            return "DELETE 0"
        for token_hash in [h for h, t in self.tokens.items() if t["user_id"] == user_id]:
            del self.tokens[token_hash]
        return "DELETE 1"

    def _insert_token(self, token_hash, user_id, scope, expiry):
        if token_hash in self.tokens:
            raise _unique_violation("tokens_pkey")
        if user_id not in self.users:
            raise asyncpg.ForeignKeyViolationError("tokens_user_id_fkey")
        self.tokens[token_hash] = {
            "hash": token_hash,
            "user_id": user_id,
            "scope": scope,
            "expiry": expiry,
        }
        return "INSERT 0 1"

    def _delete_tokens(self, scope, user_id):
        doomed = [h for h, t in self.tokens.items() if t["scope"] == scope and t["user_id"] == user_id]
        for token_hash in doomed:
            del self.tokens[token_hash]
        return f"DELETE {len(doomed)}"

    def _resolve(self, token_hash, scope, now):
        token = self.tokens.get(token_hash)
        if token is None or token["scope"] != scope or not token["expiry"] > now:
            return None
        return self._row(self.users[token["user_id"]])

    def _unactivated_expired(self, scope, cutoff):
        rows = []
        for user_id, user in sorted(self.users.items()):
            if user["activated"]:
                continue
            expiries = [t["expiry"] for t in self.tokens_for(user_id, scope)]
            if expiries and max(expiries) < cutoff:
                rows.append(self._row(user))
        return rows


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_db(store):
    """Route every service's get_pool() to the in-memory store."""
    with (
        patch("modulehub.services.user_service.get_pool", new_callable=AsyncMock, return_value=store),
        patch("modulehub.services.token_service.get_pool", new_callable=AsyncMock, return_value=store),
        patch("modulehub.api.users.get_pool", new_callable=AsyncMock, return_value=store),
        patch("modulehub.database.get_pool", new_callable=AsyncMock, return_value=store),
    ):
        yield store
