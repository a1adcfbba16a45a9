import asyncio
import sys
from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.redis import RedisStorage
from aiogram.types import BotCommand
from aiogram.enums import ParseMode
from aiogram.client.default import DefaultBotProperties
from loguru import logger

from ..core.config import settings
from ..core.logging_config import setup_logging
from ..core.resources import Resources
from ..core.scheduler import start_scheduler
from .handlers import admin, user
from .middlewares import setup_middlewares

async def set_commands(bot: Bot):
    commands = [
        BotCommand(command="start", description="Начать"),
        BotCommand(command="help", description="Помощь"),
        BotCommand(command="new", description="Новый чат"),
        BotCommand(command="chats", description="Последние чаты"),
        BotCommand(command="usage", description="Лимит запросов"),
        BotCommand(command="token", description="Токен для HTTP API"),
    ]
    await bot.set_my_commands(commands)

async def on_startup(bot: Bot, resources: Resources):
    try:
        await resources.connect()
    except Exception as e:
        logger.error(f"Ошибка подключения к хранилищам: {e}")
        sys.exit(1)

    await set_commands(bot)
    logger.info("Команды бота установлены")

    resources.scheduler = start_scheduler(
        resources.db, resources.settings.TIMEZONE, resources.settings.REQUEST_RETENTION_DAYS
    )
    logger.info("Бот запущен")

async def on_shutdown(bot: Bot, resources: Resources):
    if resources.scheduler:
        resources.scheduler.shutdown(wait=False)
    await resources.close()
    logger.info("Бот остановлен и соединения закрыты")

def register_handlers(dp: Dispatcher):
    dp.include_router(admin.router)
    dp.include_router(user.router)

async def main():
    setup_logging()

    # Проверка переменных окружения
    required = [settings.BOT_TOKEN, settings.OPENAI_API_KEY, settings.SERPER_API_KEY, settings.POSTGRES_DSN, settings.REDIS_DSN]
    if not all(required):
        logger.error("Не все переменные окружения заданы. Проверьте .env файл.")
        sys.exit(1)

    resources = Resources.create(settings)
    bot = Bot(
        token=settings.BOT_TOKEN,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML)
    )
    storage = RedisStorage(resources.redis)
    # зависимости попадают в хендлеры по имени аргумента
    dp = Dispatcher(
        storage=storage,
        resources=resources,
        db=resources.db,
        deep_search=resources.deep_search,
        settings=settings,
        admin_ids=settings.admin_ids,
    )

    setup_middlewares(dp, settings.admin_ids)
    register_handlers(dp)

    dp.startup.register(on_startup)
    dp.shutdown.register(on_shutdown)

    try:
        await dp.start_polling(bot)
    except (KeyboardInterrupt, SystemExit):
        logger.info("Остановка бота...")
    finally:
        await bot.session.close()

def run():
    try:
        asyncio.run(main())
    except Exception as e:
        logger.exception(f"Ошибка при запуске: {e}")

if __name__ == "__main__":
    run()
