import redis.asyncio as redis


def create_redis_client(dsn: str) -> redis.Redis:
    return redis.from_url(dsn, decode_responses=True)
