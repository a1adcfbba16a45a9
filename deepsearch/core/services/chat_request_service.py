from loguru import logger
from ..errors import QuotaExceeded
from ..models.chat import ChatMessage
from ..models.user import User
from ..tracing import span
from .chat_service import chat_title, upsert_chat
from .quota_service import DAILY_REQUEST_LIMIT, DEFAULT_TIMEZONE, can_make_request, create_user_request


async def begin_chat_request(
    db,
    user: User,
    chat_id: str,
    messages: list[ChatMessage],
    limit: int = DAILY_REQUEST_LIMIT,
    tz: str = DEFAULT_TIMEZONE,
) -> str:
    """
    Всё, что нужно сделать до запуска модели:
    1. проверить дневной лимит (QuotaExceeded, без побочных эффектов);
    2. сохранить чат с входящими сообщениями, чтобы запись была даже при падении стрима
       (ChatOwnershipError, без изменений);
    3. списать одну единицу лимита.
    Возвращает заголовок чата.
    """
    with span("check-rate-limit", user_id=user.id) as output:
        can_proceed = user.is_admin or await can_make_request(db, user.id, limit, tz)
        output["can_proceed"] = can_proceed
    if not can_proceed:
        raise QuotaExceeded()

    title = chat_title(messages)
    with span("save-initial-chat", user_id=user.id, chat_id=chat_id, message_count=len(messages)) as output:
        await upsert_chat(db, user.id, chat_id, title, messages)
        output["success"] = True

    await create_user_request(db, user.id)
    return title


async def save_finished_chat(
    db,
    user_id: str,
    chat_id: str,
    title: str,
    messages: list[ChatMessage],
    response_messages: list[ChatMessage],
) -> bool:
    """
    Сохраняет чат целиком после ответа модели. Ответ клиенту к этому моменту уже
    отправлен, поэтому ошибка только логируется.
    """
    updated = [*messages, *response_messages]
    try:
        with span("save-chat", user_id=user_id, chat_id=chat_id, message_count=len(updated)) as output:
            await upsert_chat(db, user_id, chat_id, title, updated)
            output["success"] = True
    except Exception:
        logger.exception(f"Failed to save chat {chat_id}")
        return False
    return True
