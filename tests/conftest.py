"""Pytest configuration for tests.

Sets up Python path and in-memory doubles for PostgreSQL (asyncpg-style
Database) and Redis.
"""

import copy
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to Python path so imports work correctly
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


def _norm(query: str) -> str:
    return " ".join(query.split())


class FakeDatabase:
    """
    In-memory stand-in for deepsearch.core.db.postgres.Database.

    Understands exactly the statements the services issue; anything else fails
    the test loudly. Rows are plain dicts, so both row['col'] and dict(row) work.
    """

    def __init__(self):
        self.users: dict[str, dict] = {}
        self.chats: dict[str, dict] = {}
        self.messages: list[dict] = []
        self.user_requests: list[dict] = []
        self.writes: list[str] = []
        self.fail_on: set[str] = set()
        self._next_id = 1

    # --- seeding helpers -------------------------------------------------

    def add_user(self, user_id, is_admin=False, telegram_id=None, api_token_hash=None, **extra):
        row = {
            "id": user_id,
            "telegram_id": telegram_id,
            "username": extra.get("username"),
            "full_name": extra.get("full_name"),
            "api_token_hash": api_token_hash,
            "is_admin": is_admin,
            "created_at": datetime.now(timezone.utc),
        }
        self.users[user_id] = row
        return row

    def add_requests(self, user_id, count, created_at=None):
        for _ in range(count):
            self.user_requests.append(
                {"id": self._id(), "user_id": user_id, "created_at": created_at or datetime.now(timezone.utc)}
            )

    def chat_messages(self, chat_id):
        rows = [m for m in self.messages if m["chat_id"] == chat_id]
        return sorted(rows, key=lambda m: m["position"])

    # --- internals -------------------------------------------------------

    def _id(self):
        value = self._next_id
        self._next_id += 1
        return value

    def _check_failure(self, q):
        for prefix in self.fail_on:
            if q.startswith(prefix):
                raise RuntimeError(f"database unavailable: {prefix}")

    def _write(self, q):
        self.writes.append(q)

    # --- Database API ----------------------------------------------------

    async def execute(self, query, *args):
        q = _norm(query)
        self._check_failure(q)

        if q == "INSERT INTO user_requests (user_id, created_at) VALUES ($1, $2)":
            self._write(q)
            self.user_requests.append({"id": self._id(), "user_id": args[0], "created_at": args[1]})
            return "INSERT 0 1"

        if q == "DELETE FROM user_requests WHERE created_at < $1":
            self._write(q)
            before = len(self.user_requests)
            self.user_requests = [r for r in self.user_requests if r["created_at"] >= args[0]]
            return f"DELETE {before - len(self.user_requests)}"

        if q == "INSERT INTO chats (id, user_id, title, created_at, updated_at) VALUES ($1, $2, $3, $4, $4)":
            self._write(q)
            chat_id, user_id, title, now = args
            assert chat_id not in self.chats, "duplicate chat primary key"
            self.chats[chat_id] = {
                "id": chat_id, "user_id": user_id, "title": title, "created_at": now, "updated_at": now,
            }
            return "INSERT 0 1"

        if q == "UPDATE chats SET title=$1, updated_at=$2 WHERE id=$3":
            self._write(q)
            title, now, chat_id = args
            self.chats[chat_id].update(title=title, updated_at=now)
            return "UPDATE 1"

        if q == "DELETE FROM messages WHERE chat_id=$1":
            self._write(q)
            before = len(self.messages)
            self.messages = [m for m in self.messages if m["chat_id"] != args[0]]
            return f"DELETE {before - len(self.messages)}"

        if q == "UPDATE users SET is_admin=TRUE WHERE id=$1":
            self._write(q)
            self.users[args[0]]["is_admin"] = True
            return "UPDATE 1"

        if q == "UPDATE users SET api_token_hash=$1 WHERE id=$2":
            self._write(q)
            self.users[args[1]]["api_token_hash"] = args[0]
            return "UPDATE 1"

        if q == "UPDATE users SET is_admin=$1 WHERE telegram_id=$2":
            self._write(q)
            matched = [u for u in self.users.values() if u["telegram_id"] == args[1]]
            for user in matched:
                user["is_admin"] = args[0]
            return f"UPDATE {len(matched)}"

        raise AssertionError(f"Unexpected execute: {q}")

    async def executemany(self, query, args):
        q = _norm(query)
        self._check_failure(q)

        if q == "INSERT INTO messages (chat_id, role, parts, position) VALUES ($1, $2, $3, $4)":
            self._write(q)
            for chat_id, role, parts, position in args:
                assert chat_id in self.chats, "messages.chat_id foreign key"
                assert not any(
                    m["chat_id"] == chat_id and m["position"] == position for m in self.messages
                ), "messages_chat_position_key"
                self.messages.append(
                    {"id": self._id(), "chat_id": chat_id, "role": role, "parts": copy.deepcopy(parts), "position": position}
                )
            return None

        raise AssertionError(f"Unexpected executemany: {q}")

    async def fetchrow(self, query, *args):
        q = _norm(query)
        self._check_failure(q)

        if q == "SELECT is_admin FROM users WHERE id=$1":
            user = self.users.get(args[0])
            return {"is_admin": user["is_admin"]} if user else None

        if q == "SELECT * FROM users WHERE api_token_hash=$1":
            return next((dict(u) for u in self.users.values() if u["api_token_hash"] == args[0]), None)

        if q == "SELECT * FROM users WHERE telegram_id=$1":
            return next((dict(u) for u in self.users.values() if u["telegram_id"] == args[0]), None)

        if q.startswith("INSERT INTO users (id, telegram_id, username, full_name, is_admin, created_at)"):
            self._write(q)
            user_id, telegram_id, username, full_name, is_admin, created_at = args
            row = self.add_user(user_id, is_admin=is_admin, telegram_id=telegram_id, username=username, full_name=full_name)
            row["created_at"] = created_at
            return dict(row)

        if q == "SELECT id, user_id FROM chats WHERE id=$1":
            chat = self.chats.get(args[0])
            return {"id": chat["id"], "user_id": chat["user_id"]} if chat else None

        if q == "SELECT id, title, created_at, updated_at FROM chats WHERE id=$1 AND user_id=$2":
            chat = self.chats.get(args[0])
            if not chat or chat["user_id"] != args[1]:
                return None
            return {k: chat[k] for k in ("id", "title", "created_at", "updated_at")}

        raise AssertionError(f"Unexpected fetchrow: {q}")

    async def fetchval(self, query, *args):
        q = _norm(query)
        self._check_failure(q)

        if q == "SELECT COUNT(*) FROM user_requests WHERE user_id=$1 AND created_at >= $2":
            return sum(1 for r in self.user_requests if r["user_id"] == args[0] and r["created_at"] >= args[1])

        if q == "SELECT 1":
            return 1

        raise AssertionError(f"Unexpected fetchval: {q}")

    async def fetch(self, query, *args):
        q = _norm(query)
        self._check_failure(q)

        if q == "SELECT role, parts FROM messages WHERE chat_id=$1 ORDER BY position":
            return [{"role": m["role"], "parts": copy.deepcopy(m["parts"])} for m in self.chat_messages(args[0])]

        if q.startswith("SELECT id, title, created_at, updated_at FROM chats WHERE user_id=$1 ORDER BY updated_at DESC"):
            rows = sorted(
                (c for c in self.chats.values() if c["user_id"] == args[0]),
                key=lambda c: c["updated_at"],
                reverse=True,
            )
            if q.endswith("LIMIT $2"):
                rows = rows[: args[1]]
            return [{k: c[k] for k in ("id", "title", "created_at", "updated_at")} for c in rows]

        raise AssertionError(f"Unexpected fetch: {q}")

    @asynccontextmanager
    async def transaction(self):
        snapshot = copy.deepcopy((self.users, self.chats, self.messages, self.user_requests, self.writes))
        try:
            yield self
        except BaseException:
            self.users, self.chats, self.messages, self.user_requests, self.writes = snapshot
            raise


class FakeRedis:
    """Minimal redis.asyncio double with a manual clock for TTL checks."""

    def __init__(self):
        self.store: dict[str, tuple[str, float | None]] = {}
        self.now = 0.0
        self.get_calls = 0
        self.set_calls = 0

    async def get(self, key):
        self.get_calls += 1
        entry = self.store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self.now >= expires_at:
            del self.store[key]
            return None
        return value

    async def set(self, key, value, ex=None):
        self.set_calls += 1
        self.store[key] = (value, self.now + ex if ex else None)
        return True

    async def ping(self):
        return True

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def fake_redis():
    return FakeRedis()
