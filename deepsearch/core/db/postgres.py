import json
from contextlib import asynccontextmanager
import asyncpg


async def _init_connection(conn):
    # JSONB <-> python-объекты (messages.parts)
    await conn.set_type_codec('jsonb', encoder=json.dumps, decoder=json.loads, schema='pg_catalog')


class Database:
    def __init__(self, dsn: str):
        self.dsn = dsn
        self.pool = None

    async def connect(self):
        self.pool = await asyncpg.create_pool(dsn=self.dsn, init=_init_connection)

    async def close(self):
        if self.pool:
            await self.pool.close()

    async def execute(self, query, *args, **kwargs):
        async with self.pool.acquire() as conn:
            return await conn.execute(query, *args, **kwargs)

    async def executemany(self, query, args, **kwargs):
        async with self.pool.acquire() as conn:
            return await conn.executemany(query, args, **kwargs)

    async def fetch(self, query, *args, **kwargs):
        async with self.pool.acquire() as conn:
            return await conn.fetch(query, *args, **kwargs)

    async def fetchrow(self, query, *args, **kwargs):
        async with self.pool.acquire() as conn:
            return await conn.fetchrow(query, *args, **kwargs)

    async def fetchval(self, query, *args, **kwargs):
        async with self.pool.acquire() as conn:
            return await conn.fetchval(query, *args, **kwargs)

    @asynccontextmanager
    async def transaction(self):
        """Отдаёт соединение с открытой транзакцией (commit на выходе, rollback при исключении)."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn
