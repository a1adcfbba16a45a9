from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message
from ...core.services.user_service import set_admin
from ..filters import AdminFilter

router = Router()


def parse_telegram_id(command: CommandObject) -> int | None:
    if not command.args or not command.args.strip().lstrip("-").isdigit():
        return None
    return int(command.args.strip())


@router.message(AdminFilter(), Command("set_admin"))
async def cmd_set_admin(message: Message, command: CommandObject, db):
    telegram_id = parse_telegram_id(command)
    if telegram_id is None:
        await message.answer("Использование: /set_admin &lt;telegram_id&gt;")
        return
    if await set_admin(db, telegram_id, True):
        await message.answer(f"Пользователь {telegram_id} теперь без дневного лимита.")
    else:
        await message.answer("Пользователь не найден. Он должен сначала написать боту /start.")


@router.message(AdminFilter(), Command("unset_admin"))
async def cmd_unset_admin(message: Message, command: CommandObject, db):
    telegram_id = parse_telegram_id(command)
    if telegram_id is None:
        await message.answer("Использование: /unset_admin &lt;telegram_id&gt;")
        return
    if await set_admin(db, telegram_id, False):
        await message.answer(f"Пользователь {telegram_id} снова с дневным лимитом.")
    else:
        await message.answer("Пользователь не найден.")
