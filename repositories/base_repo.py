# repositories/base_repo.py
from __future__ import annotations

import json
from typing import Any

from db.store import RowReader, RowStore


def to_json(v: Any) -> str | None:
    if v is None:
        return None
    return json.dumps(v, separators=(",", ":"), ensure_ascii=False)


def from_json(v: Any) -> Any:
    """JSON columns come back as str from MySQL and as str from MemoryStore."""
    if v is None:
        return None
    if isinstance(v, (dict, list)):
        return v
    if isinstance(v, (bytes, bytearray)):
        v = v.decode("utf-8")
    return json.loads(v)


def opt_int(v: Any) -> int | None:
    return int(v) if v is not None else None


class BaseRepo:
    """
    Base repository with small helpers to keep concrete repos readable.
    Repos map rows <-> domain objects; they hold no bracket rules.

    Every method takes an optional `rows` argument: pass the writer of an
    open transaction (or a snapshot reader) to run inside it, or leave it
    out to hit the store directly.
    """

    def __init__(self, store: RowStore) -> None:
        self._store = store

    @property
    def store(self) -> RowStore:
        return self._store

    def _rows(self, rows: RowReader | None) -> Any:
        return rows if rows is not None else self._store

    async def fetch_one(self, table: str, filters: dict[str, Any], *, rows: RowReader | None = None) -> dict[str, Any] | None:
        found = await self._rows(rows).select(table, filters)
        return found[0] if found else None

    async def fetch_all(self, table: str, filters: dict[str, Any], *, rows: RowReader | None = None) -> list[dict[str, Any]]:
        return await self._rows(rows).select(table, filters)
