import functools
import hashlib
import json
from typing import Any, Awaitable, Callable, TypeVar
from loguru import logger
from redis.exceptions import RedisError

CACHE_EXPIRY_SECONDS = 60 * 60 * 6

T = TypeVar("T")


class RedisCache:
    """
    Кэш результатов асинхронных операций в Redis.

    Ключ: prefix:name:sha256(аргументов в JSON). Значение хранится в JSON с фиксированным TTL.
    Одновременные вызовы с одинаковым ключом не склеиваются: оба идут в операцию,
    последний записавший побеждает.
    """

    def __init__(self, redis, ttl: int = CACHE_EXPIRY_SECONDS, prefix: str = "cache"):
        self.redis = redis
        self.ttl = ttl
        self.prefix = prefix

    def key_for(self, name: str, args: tuple, kwargs: dict) -> str:
        payload = json.dumps([list(args), kwargs], sort_keys=True, ensure_ascii=False, default=str)
        digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
        return f"{self.prefix}:{name}:{digest}"

    async def get(self, key: str) -> tuple[bool, Any]:
        try:
            raw = await self.redis.get(key)
        except RedisError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return False, None
        if raw is None:
            return False, None
        try:
            return True, json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Could not decode cache entry {key}: {e}")
            return False, None

    async def set(self, key: str, value: Any):
        try:
            await self.redis.set(key, json.dumps(value, ensure_ascii=False), ex=self.ttl)
        except (RedisError, TypeError, ValueError) as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    def wrap(self, name: str, fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def cached(*args, **kwargs):
            key = self.key_for(name, args, kwargs)
            hit, value = await self.get(key)
            if hit:
                logger.debug(f"Cache hit: {key}")
                return value
            value = await fn(*args, **kwargs)
            await self.set(key, value)
            return value

        return cached
