from aiogram import BaseMiddleware
from aiogram.types import Message, CallbackQuery
from loguru import logger
import time
from ..core.services.user_service import get_or_create_telegram_user


class LoggingMiddleware(BaseMiddleware):
    async def __call__(self, handler, event, data):
        if isinstance(event, Message) and event.from_user is not None:
            logger.debug(f"User {event.from_user.id}: {'command' if (event.text or '').startswith('/') else 'message'}")
        return await handler(event, data)


class UserMiddleware(BaseMiddleware):
    """Находит (или регистрирует) пользователя в БД и кладёт его в data['user']."""

    def __init__(self, admin_ids: list[int]):
        self.admin_ids = admin_ids

    async def __call__(self, handler, event, data):
        if not isinstance(event, (Message, CallbackQuery)) or event.from_user is None:
            return await handler(event, data)

        tg_user = event.from_user
        data["user"] = await get_or_create_telegram_user(
            data["db"],
            tg_user.id,
            tg_user.username,
            tg_user.full_name,
            is_admin=tg_user.id in self.admin_ids,
        )
        return await handler(event, data)


class AntiFloodMiddleware(BaseMiddleware):
    def __init__(self, rate_limit=1.0):
        self.rate_limit = rate_limit
        self.last_time = {}

    async def __call__(self, handler, event, data):
        if not isinstance(event, Message) or event.from_user is None:
            return await handler(event, data)
        user_id = event.from_user.id
        now = time.time()
        last = self.last_time.get(user_id, 0)
        if now - last < self.rate_limit:
            await event.answer("Пожалуйста, не флудите.")
            return None
        self.last_time[user_id] = now
        return await handler(event, data)


def setup_middlewares(dp, admin_ids: list[int]):
    dp.message.middleware(LoggingMiddleware())
    dp.message.middleware(AntiFloodMiddleware(rate_limit=1.0))
    dp.message.middleware(UserMiddleware(admin_ids))
    dp.callback_query.middleware(UserMiddleware(admin_ids))
