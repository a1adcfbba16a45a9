import hashlib
import secrets
import uuid
from datetime import datetime, timezone
from loguru import logger
from ..models.user import User


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def get_user_by_token(db, token: str) -> User | None:
    if not token:
        return None
    row = await db.fetchrow("SELECT * FROM users WHERE api_token_hash=$1", hash_token(token))
    return User(**dict(row)) if row else None


async def get_or_create_telegram_user(
    db,
    telegram_id: int,
    username: str | None = None,
    full_name: str | None = None,
    is_admin: bool = False,
) -> User:
    row = await db.fetchrow("SELECT * FROM users WHERE telegram_id=$1", telegram_id)
    if row:
        user = User(**dict(row))
        # админы из ADMIN_IDS получают флаг и при повторном входе
        if is_admin and not user.is_admin:
            await db.execute("UPDATE users SET is_admin=TRUE WHERE id=$1", user.id)
            user.is_admin = True
        return user

    row = await db.fetchrow(
        "INSERT INTO users (id, telegram_id, username, full_name, is_admin, created_at) "
        "VALUES ($1, $2, $3, $4, $5, $6) RETURNING *",
        uuid.uuid4().hex, telegram_id, username, full_name, is_admin, datetime.now(timezone.utc)
    )
    logger.info(f"Registered user {row['id']} for telegram_id {telegram_id}")
    return User(**dict(row))


async def issue_api_token(db, user_id: str) -> str:
    """Выпускает новый API-токен. В базе хранится только хэш, старый токен перестаёт работать."""
    token = secrets.token_urlsafe(32)
    await db.execute("UPDATE users SET api_token_hash=$1 WHERE id=$2", hash_token(token), user_id)
    logger.info(f"Issued new API token for user {user_id}")
    return token


async def set_admin(db, telegram_id: int, is_admin: bool) -> bool:
    status = await db.execute("UPDATE users SET is_admin=$1 WHERE telegram_id=$2", is_admin, telegram_id)
    return status == "UPDATE 1"
