# db/mysql_store.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping, Sequence

import aiomysql

from db.pool import DbPool
from db.schema import AUTO_ID_TABLES, TABLES
from db.store import DuplicateRowError, RowStore
from db.tx import get_cursor, read_snapshot, transaction

log = logging.getLogger(__name__)


def _columns(table: str, names: Sequence[str]) -> list[str]:
    if table not in TABLES:
        raise KeyError(f"Unknown table: {table}")
    allowed = TABLES[table]
    for n in names:
        if n not in allowed:
            raise KeyError(f"Unknown column {table}.{n}")
    return list(names)


def _where(table: str, filters: Mapping[str, Any] | None) -> tuple[str, list[Any]]:
    if not filters:
        return "", []
    cols = _columns(table, list(filters))
    parts: list[str] = []
    params: list[Any] = []
    for c in cols:
        v = filters[c]
        if v is None:
            parts.append(f"`{c}` IS NULL")
        else:
            parts.append(f"`{c}`=%s")
            params.append(v)
    return " WHERE " + " AND ".join(parts), params


def build_select(table: str, filters: Mapping[str, Any] | None = None) -> tuple[str, list[Any]]:
    where, params = _where(table, filters)
    cols = ", ".join(f"`{c}`" for c in TABLES[table])
    order = " ORDER BY `id`" if "id" in TABLES[table] else ""
    return f"SELECT {cols} FROM `{table}`{where}{order};", params


def build_insert(table: str, row: Mapping[str, Any]) -> tuple[str, list[Any]]:
    cols = _columns(table, [c for c in row if not (c == AUTO_ID_TABLES.get(table) and row[c] is None)])
    placeholders = ", ".join(["%s"] * len(cols))
    col_sql = ", ".join(f"`{c}`" for c in cols)
    return f"INSERT INTO `{table}` ({col_sql}) VALUES ({placeholders});", [row[c] for c in cols]


def build_update(table: str, filters: Mapping[str, Any], changes: Mapping[str, Any]) -> tuple[str, list[Any]]:
    if not filters:
        raise ValueError("Refusing to UPDATE without filters.")
    if not changes:
        raise ValueError("Nothing to update.")
    set_cols = _columns(table, list(changes))
    set_sql = ", ".join(f"`{c}`=%s" for c in set_cols)
    where, where_params = _where(table, filters)
    return f"UPDATE `{table}` SET {set_sql}{where};", [changes[c] for c in set_cols] + where_params


class _CursorRows:
    """RowWriter over one open cursor (inside a transaction or snapshot)."""

    def __init__(self, cur: aiomysql.Cursor) -> None:
        self._cur = cur

    async def select(self, table: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        sql, params = build_select(table, filters)
        await self._cur.execute(sql, params)
        rows = await self._cur.fetchall()
        return [dict(r) for r in rows or []]

    async def insert(self, table: str, row: Mapping[str, Any]) -> int:
        sql, params = build_insert(table, row)
        try:
            await self._cur.execute(sql, params)
        except aiomysql.IntegrityError as e:
            raise DuplicateRowError(str(e)) from e
        if table in AUTO_ID_TABLES and row.get(AUTO_ID_TABLES[table]) is None:
            return int(self._cur.lastrowid)
        return int(row.get("id") or 0)

    async def update(self, table: str, filters: Mapping[str, Any], changes: Mapping[str, Any]) -> int:
        sql, params = build_update(table, filters, changes)
        await self._cur.execute(sql, params)
        return int(self._cur.rowcount)


class MySqlStore(RowStore):
    """
    RowStore over an aiomysql pool. Writes inside transaction() share one
    connection and commit together; snapshot() reads from one consistent
    InnoDB snapshot.
    """

    def __init__(self, db: DbPool) -> None:
        self._db = db

    @property
    def pool(self) -> aiomysql.Pool:
        return self._db.pool

    async def select(self, table: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        async with get_cursor(self.pool) as cur:
            return await _CursorRows(cur).select(table, filters)

    async def insert(self, table: str, row: Mapping[str, Any]) -> int:
        async with transaction(self.pool) as cur:
            return await _CursorRows(cur).insert(table, row)

    async def update(self, table: str, filters: Mapping[str, Any], changes: Mapping[str, Any]) -> int:
        async with transaction(self.pool) as cur:
            return await _CursorRows(cur).update(table, filters, changes)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_CursorRows]:
        async with transaction(self.pool) as cur:
            yield _CursorRows(cur)

    @asynccontextmanager
    async def snapshot(self) -> AsyncIterator[_CursorRows]:
        async with read_snapshot(self.pool) as cur:
            yield _CursorRows(cur)

    async def close(self) -> None:
        await self._db.close()
