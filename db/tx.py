# db/tx.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import aiomysql


@asynccontextmanager
async def get_cursor(pool: aiomysql.Pool) -> AsyncIterator[aiomysql.DictCursor]:
    """Single autocommitted statement; rows come back as dicts."""
    async with pool.acquire() as conn:
        async with conn.cursor(aiomysql.DictCursor) as cur:
            yield cur


@asynccontextmanager
async def transaction(pool: aiomysql.Pool) -> AsyncIterator[aiomysql.DictCursor]:
    """
    Every statement issued through the cursor commits together.

    The connection is rolled back on any exception, including cancellation
    of the task that holds it, so a half-applied report never lands.
    """
    async with pool.acquire() as conn:
        await conn.begin()
        try:
            async with conn.cursor(aiomysql.DictCursor) as cur:
                yield cur
            await conn.commit()
        except BaseException:
            await conn.rollback()
            raise


@asynccontextmanager
async def read_snapshot(pool: aiomysql.Pool) -> AsyncIterator[aiomysql.DictCursor]:
    """
    Read-only transaction with a consistent InnoDB snapshot: every SELECT
    issued through the cursor sees the database as of the first statement.
    """
    async with pool.acquire() as conn:
        async with conn.cursor(aiomysql.DictCursor) as cur:
            await cur.execute("START TRANSACTION WITH CONSISTENT SNAPSHOT, READ ONLY;")
            try:
                yield cur
            finally:
                await conn.commit()
