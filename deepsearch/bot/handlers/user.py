import uuid
from aiogram import Router, F, Bot
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Message
from aiogram.utils.chat_action import ChatActionSender
from aiogram.utils.markdown import hbold, hcode
from aiogram.utils.text_decorations import html_decoration
from loguru import logger
from ...core.config import Settings
from ...core.errors import ChatOwnershipError, QuotaExceeded
from ...core.models.chat import ChatMessage
from ...core.models.user import User
from ...core.services.chat_request_service import begin_chat_request, save_finished_chat
from ...core.services.chat_service import get_chat, get_chats
from ...core.services.deep_search_service import DeepSearch, FinishEvent
from ...core.services.quota_service import get_usage
from ...core.services.user_service import issue_api_token
from ...core.tracing import trace

router = Router()

MESSAGE_CHUNK = 4000
CHATS_ON_PAGE = 10

HELP_TEXT = (
    f"{hbold('DeepSearch')}\n"
    "Задайте вопрос: я поищу в интернете, прочитаю найденные страницы и отвечу со ссылками на источники.\n\n"
    "/new — начать новый чат\n"
    "/chats — последние чаты\n"
    "/usage — сколько запросов осталось сегодня\n"
    "/token — получить токен для HTTP API"
)


def split_text(text: str, size: int = MESSAGE_CHUNK) -> list[str]:
    return [text[i:i + size] for i in range(0, len(text), size)] or [""]


async def current_chat_id(state: FSMContext) -> str:
    data = await state.get_data()
    chat_id = data.get("chat_id")
    if not chat_id:
        chat_id = uuid.uuid4().hex
        await state.update_data(chat_id=chat_id)
    return chat_id


@router.message(CommandStart())
async def cmd_start(message: Message, state: FSMContext, user: User):
    logger.info(f"--- /start command initiated by user {user.id} ---")
    await state.clear()
    name = user.full_name or user.username or "пользователь"
    await message.answer(f"Привет, {html_decoration.quote(name)}!\n\n{HELP_TEXT}")


@router.message(Command("help"))
async def cmd_help(message: Message):
    await message.answer(HELP_TEXT)


@router.message(Command("new"))
async def cmd_new(message: Message, state: FSMContext):
    await state.update_data(chat_id=uuid.uuid4().hex)
    await message.answer("Начат новый чат. Задайте вопрос.")


@router.message(Command("chats"))
async def cmd_chats(message: Message, user: User, db):
    chats = await get_chats(db, user.id, limit=CHATS_ON_PAGE)
    # callback_data в Telegram ограничена 64 байтами
    buttons = [
        [InlineKeyboardButton(text=chat.title[:60], callback_data=f"open:{chat.id}")]
        for chat in chats
        if len(f"open:{chat.id}".encode()) <= 64
    ]
    if not buttons:
        await message.answer("Чатов пока нет. Просто задайте вопрос.")
        return
    await message.answer("Ваши последние чаты:", reply_markup=InlineKeyboardMarkup(inline_keyboard=buttons))


@router.callback_query(F.data.startswith("open:"))
async def open_chat_callback(callback: CallbackQuery, state: FSMContext, user: User, db):
    chat_id = callback.data.split(":", 1)[1]
    chat = await get_chat(db, chat_id, user.id)
    if chat is None:
        await callback.answer("Чат не найден", show_alert=True)
        return
    await state.update_data(chat_id=chat.id)
    if callback.message:
        await callback.message.answer(
            f"Продолжаем чат {hbold(chat.title[:100])} ({len(chat.messages)} сообщений)."
        )
    await callback.answer()


@router.message(Command("token"))
async def cmd_token(message: Message, user: User, db):
    token = await issue_api_token(db, user.id)
    await message.answer(
        f"Ваш токен для HTTP API (старый больше не действует):\n{hcode(token)}\n\n"
        "Передавайте его в заголовке Authorization: Bearer &lt;token&gt;"
    )


@router.message(Command("usage"))
async def cmd_usage(message: Message, user: User, db, settings: Settings):
    if user.is_admin:
        await message.answer("У вас нет дневного лимита.")
        return
    used = await get_usage(db, user.id, settings.TIMEZONE)
    await message.answer(f"Запросов сегодня: {used}/{settings.DAILY_REQUEST_LIMIT}")


@router.message(F.text, ~F.text.startswith("/"))
async def dialog_handler(
    message: Message,
    bot: Bot,
    state: FSMContext,
    user: User,
    db,
    deep_search: DeepSearch,
    settings: Settings,
):
    chat_id = await current_chat_id(state)
    chat = await get_chat(db, chat_id, user.id)
    history = chat.messages if chat else []
    messages = [*history, ChatMessage(role="user", content=message.text)]

    with trace("chat", user_id=user.id, chat_id=chat_id):
        try:
            title = await begin_chat_request(
                db, user, chat_id, messages,
                limit=settings.DAILY_REQUEST_LIMIT, tz=settings.TIMEZONE,
            )
        except QuotaExceeded:
            await message.answer(
                f"Лимит на сегодня исчерпан: {settings.DAILY_REQUEST_LIMIT} запроса в день. Возвращайтесь завтра."
            )
            return
        except ChatOwnershipError:
            await state.update_data(chat_id=None)
            await message.answer("Этот чат принадлежит другому пользователю. Начните новый: /new")
            return

        async def on_finish(finish: FinishEvent):
            await save_finished_chat(db, user.id, chat_id, title, messages, finish.response_messages)

        answer = ""
        try:
            async with ChatActionSender(bot=bot, chat_id=message.chat.id):
                async for event in deep_search.stream(messages, on_finish=on_finish):
                    if isinstance(event, FinishEvent):
                        answer = event.text
        except Exception:
            logger.exception(f"Deep search failed for chat {chat_id}")
            await message.answer("Извините, произошла ошибка при поиске. Попробуйте позже.")
            return

        if not answer:
            answer = "Не удалось получить ответ. Попробуйте переформулировать вопрос."
        # ответ модели в markdown, HTML-разметку для него не включаем
        for part in split_text(answer):
            await message.answer(part, parse_mode=None)
        logger.info(f"User {user.id} получил ответ в чате {chat_id}")
