import asyncio
from dataclasses import dataclass
from typing import Optional
import httpx
from alembic import command
from alembic.config import Config
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger
from .config import Settings
from .db.postgres import Database
from .db.redis_client import create_redis_client
from .services.cache_service import RedisCache
from .services.deep_search_service import DeepSearch
from .services.openai_service import create_openai_client
from .services.scraper_service import Scraper
from .services.search_service import SerperClient


@dataclass
class Resources:
    """Все внешние клиенты процесса. Создаются на старте и передаются явно."""

    settings: Settings
    db: Database
    redis: object
    http: httpx.AsyncClient
    deep_search: DeepSearch
    scheduler: Optional[AsyncIOScheduler] = None

    @classmethod
    def create(cls, settings: Settings) -> "Resources":
        db = Database(settings.POSTGRES_DSN)
        redis = create_redis_client(settings.REDIS_DSN)
        http = httpx.AsyncClient(timeout=httpx.Timeout(settings.SCRAPE_TIMEOUT_SECONDS))
        deep_search = DeepSearch(
            client=create_openai_client(settings.OPENAI_API_KEY, settings.OPENAI_BASE_URL),
            search=SerperClient(settings.SERPER_API_KEY, http),
            scraper=Scraper(
                http,
                timeout=settings.SCRAPE_TIMEOUT_SECONDS,
                max_urls=settings.SCRAPE_MAX_URLS,
                respect_robots=settings.SCRAPE_RESPECT_ROBOTS,
            ),
            cache=RedisCache(redis, ttl=settings.CACHE_TTL_SECONDS),
            model=settings.OPENAI_MODEL,
            max_steps=settings.MAX_STEPS,
            search_results=settings.SEARCH_RESULTS,
        )
        return cls(settings=settings, db=db, redis=redis, http=http, deep_search=deep_search)

    async def connect(self, migrate: bool = True):
        logger.info("Подключение к PostgreSQL...")
        await self.db.connect()
        logger.info("Подключение к PostgreSQL установлено")

        if migrate:
            await apply_migrations()

        logger.info("Подключение к Redis...")
        await self.redis.ping()
        logger.info("Подключение к Redis установлено")

    async def close(self):
        await self.db.close()
        await self.redis.aclose()
        await self.http.aclose()
        logger.info("Соединения закрыты")


async def apply_migrations(config_path: str = "alembic.ini"):
    logger.info("Применение миграций БД...")
    try:
        # env.py сам запускает event loop, поэтому уходим в отдельный поток
        await asyncio.to_thread(command.upgrade, Config(config_path), "head")
        logger.info("Миграции БД успешно применены.")
    except Exception as e:
        logger.error(f"Ошибка при применении миграций: {e}")
