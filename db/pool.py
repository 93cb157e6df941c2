# db/pool.py
from __future__ import annotations

import logging
from typing import Optional

import aiomysql

from config import MySqlConfig
from db.schema import DDL, TABLES

log = logging.getLogger(__name__)


class DbPool:
    """
    aiomysql pool owned by the MySQL store.

    Opened once at startup from MySqlConfig, optionally bootstraps the
    bracket tables, and is closed when the store closes.
    """

    def __init__(self, cfg: MySqlConfig) -> None:
        self._cfg = cfg
        self._pool: Optional[aiomysql.Pool] = None

    @property
    def pool(self) -> aiomysql.Pool:
        if self._pool is None:
            raise RuntimeError("MySQL pool is not open. Call await DbPool.open() first.")
        return self._pool

    @property
    def database(self) -> str:
        return self._cfg.database

    async def open(self, *, ensure_schema: bool = True) -> None:
        if self._pool is not None:
            return

        c = self._cfg
        self._pool = await aiomysql.create_pool(
            host=c.host,
            port=c.port,
            user=c.user,
            password=c.password,
            db=c.database,
            minsize=c.minsize,
            maxsize=c.maxsize,
            connect_timeout=c.connect_timeout,
            autocommit=True,  # stores open explicit transactions for grouped writes
            charset="utf8mb4",
        )
        log.info("MySQL pool open on %s:%s/%s (%d-%d connections)", c.host, c.port, c.database, c.minsize, c.maxsize)

        await self.ping()
        if ensure_schema:
            await self.ensure_schema()

    async def ping(self) -> None:
        async with self.pool.acquire() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1;")
                await cur.fetchone()

    async def missing_tables(self) -> list[str]:
        async with self.pool.acquire() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    "SELECT TABLE_NAME FROM information_schema.TABLES WHERE TABLE_SCHEMA=%s;",
                    (self._cfg.database,),
                )
                present = {str(r[0]) for r in await cur.fetchall()}
        return [t for t in TABLES if t not in present]

    async def ensure_schema(self) -> None:
        missing = await self.missing_tables()
        if not missing:
            log.debug("Bracket schema already present")
            return
        async with self.pool.acquire() as conn:
            async with conn.cursor() as cur:
                for stmt in DDL:
                    await cur.execute(stmt)
        log.info("Created bracket tables: %s", ", ".join(missing))

    async def close(self) -> None:
        if self._pool is None:
            return
        self._pool.close()
        await self._pool.wait_closed()
        self._pool = None
        log.info("MySQL pool closed")
