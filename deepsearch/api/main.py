import sys
from aiohttp import web
from loguru import logger

from ..core.config import Settings, settings
from ..core.logging_config import setup_logging
from ..core.resources import Resources
from ..core.scheduler import start_scheduler
from .app_keys import db_key, deep_search_key, redis_key, settings_key
from .handlers import routes
from .middlewares import auth_middleware, error_middleware

resources_key = web.AppKey("resources", Resources)


def create_app(settings: Settings, db, redis, deep_search) -> web.Application:
    """Собирает приложение из готовых зависимостей (в тестах сюда передаются заглушки)."""
    app = web.Application(middlewares=[error_middleware, auth_middleware])
    app[settings_key] = settings
    app[db_key] = db
    app[redis_key] = redis
    app[deep_search_key] = deep_search
    app.add_routes(routes)
    return app


def build_app(settings: Settings) -> web.Application:
    resources = Resources.create(settings)
    app = create_app(settings, resources.db, resources.redis, resources.deep_search)
    app[resources_key] = resources
    app.cleanup_ctx.append(lifespan)
    return app


async def lifespan(app: web.Application):
    resources = app[resources_key]
    try:
        await resources.connect()
    except Exception as e:
        logger.error(f"Ошибка подключения к хранилищам: {e}")
        raise
    resources.scheduler = start_scheduler(
        resources.db, resources.settings.TIMEZONE, resources.settings.REQUEST_RETENTION_DAYS
    )
    logger.info("API запущен")
    yield
    resources.scheduler.shutdown(wait=False)
    await resources.close()
    logger.info("API остановлен")


def main():
    setup_logging()
    # Проверка переменных окружения
    required = [settings.OPENAI_API_KEY, settings.SERPER_API_KEY, settings.POSTGRES_DSN, settings.REDIS_DSN]
    if not all(required):
        logger.error("Не все переменные окружения заданы. Проверьте .env файл.")
        sys.exit(1)
    web.run_app(build_app(settings), host=settings.API_HOST, port=settings.API_PORT, print=None)


if __name__ == "__main__":
    main()
