from aiogram.filters import BaseFilter
from aiogram.types import Message

# Фильтр: только для админов из ADMIN_IDS
class AdminFilter(BaseFilter):
    async def __call__(self, message: Message, admin_ids: list[int]) -> bool:
        if not message.from_user:
            return False
        return message.from_user.id in admin_ids
