import asyncio
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

DAILY_REQUEST_LIMIT = 2
DEFAULT_TIMEZONE = "Europe/Moscow"

# Дневной лимит = количество записей в user_requests с локальной полуночи.
# Проверка и вставка не атомарны: параллельные запросы одного пользователя
# могут ненадолго превысить лимит.

def start_of_day(tz: str = DEFAULT_TIMEZONE, now: datetime | None = None) -> datetime:
    zone = ZoneInfo(tz)
    now = now.astimezone(zone) if now else datetime.now(zone)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)

async def get_user_request_count(db, user_id: str, since: datetime) -> int:
    count = await db.fetchval(
        "SELECT COUNT(*) FROM user_requests WHERE user_id=$1 AND created_at >= $2",
        user_id, since
    )
    return count or 0

async def create_user_request(db, user_id: str):
    await db.execute(
        "INSERT INTO user_requests (user_id, created_at) VALUES ($1, $2)",
        user_id, datetime.now(timezone.utc)
    )

async def is_user_admin(db, user_id: str) -> bool:
    row = await db.fetchrow("SELECT is_admin FROM users WHERE id=$1", user_id)
    return bool(row and row['is_admin'])

async def can_make_request(
    db,
    user_id: str,
    limit: int = DAILY_REQUEST_LIMIT,
    tz: str = DEFAULT_TIMEZONE,
    now: datetime | None = None,
) -> bool:
    is_admin, request_count = await asyncio.gather(
        is_user_admin(db, user_id),
        get_user_request_count(db, user_id, start_of_day(tz, now)),
    )
    return is_admin or request_count < limit

async def get_usage(db, user_id: str, tz: str = DEFAULT_TIMEZONE) -> int:
    return await get_user_request_count(db, user_id, start_of_day(tz))

# Чистка старых отметок (вызывать по крону)
async def purge_user_requests(db, older_than_days: int = 30) -> int:
    cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
    status = await db.execute("DELETE FROM user_requests WHERE created_at < $1", cutoff)
    # asyncpg возвращает статус вида 'DELETE 42'
    try:
        return int(status.split()[-1])
    except (AttributeError, ValueError, IndexError):
        return 0
