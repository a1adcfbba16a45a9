from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger
from .services.quota_service import purge_user_requests


async def purge_job(db, retention_days: int):
    removed = await purge_user_requests(db, retention_days)
    logger.info(f"Удалено старых отметок запросов: {removed}")


def start_scheduler(db, timezone: str, retention_days: int) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=timezone)
    scheduler.add_job(purge_job, 'cron', hour=0, minute=5, args=[db, retention_days])
    scheduler.start()
    logger.info("Планировщик очистки отметок запросов запущен.")
    return scheduler
