from datetime import datetime, timezone
from loguru import logger
from ..errors import ChatOwnershipError
from ..models.chat import Chat, ChatMessage, ChatSummary

DEFAULT_TITLE = "New Chat"


def chat_title(messages: list[ChatMessage]) -> str:
    """Заголовок чата: текст первого сообщения."""
    if messages and messages[0].content:
        return messages[0].content
    return DEFAULT_TITLE


async def upsert_chat(db, user_id: str, chat_id: str, title: str, messages: list[ChatMessage]) -> bool:
    """
    Создаёт чат или полностью заменяет его сообщения.

    Чат принадлежит пользователю, который его создал; запись от другого пользователя
    отклоняется с ChatOwnershipError без изменений в базе. Сообщения не сравниваются:
    старые удаляются и вставляется весь новый список с позициями 0..n-1, поэтому
    повтор того же вызова даёт тот же результат. Одновременные upsert одного чата
    не блокируются: побеждает последний.
    """
    now = datetime.now(timezone.utc)
    async with db.transaction() as conn:
        existing = await conn.fetchrow("SELECT id, user_id FROM chats WHERE id=$1", chat_id)

        if existing and existing['user_id'] != user_id:
            logger.warning(f"User {user_id} tried to write chat {chat_id} owned by {existing['user_id']}")
            raise ChatOwnershipError()

        if not existing:
            await conn.execute(
                "INSERT INTO chats (id, user_id, title, created_at, updated_at) VALUES ($1, $2, $3, $4, $4)",
                chat_id, user_id, title, now
            )
        else:
            await conn.execute(
                "UPDATE chats SET title=$1, updated_at=$2 WHERE id=$3",
                title, now, chat_id
            )
            await conn.execute("DELETE FROM messages WHERE chat_id=$1", chat_id)

        if messages:
            await conn.executemany(
                "INSERT INTO messages (chat_id, role, parts, position) VALUES ($1, $2, $3, $4)",
                [(chat_id, message.role, message.to_parts(), idx) for idx, message in enumerate(messages)]
            )
    return True


async def get_chat(db, chat_id: str, user_id: str) -> Chat | None:
    chat = await db.fetchrow(
        "SELECT id, title, created_at, updated_at FROM chats WHERE id=$1 AND user_id=$2",
        chat_id, user_id
    )
    if not chat:
        return None

    rows = await db.fetch(
        "SELECT role, parts FROM messages WHERE chat_id=$1 ORDER BY position",
        chat_id
    )
    return Chat(
        **dict(chat),
        messages=[ChatMessage.from_row(row['role'], row['parts']) for row in rows],
    )


async def get_chats(db, user_id: str, limit: int | None = None) -> list[ChatSummary]:
    query = "SELECT id, title, created_at, updated_at FROM chats WHERE user_id=$1 ORDER BY updated_at DESC"
    if limit:
        rows = await db.fetch(query + " LIMIT $2", user_id, limit)
    else:
        rows = await db.fetch(query, user_id)
    return [ChatSummary(**dict(row)) for row in rows]
