# db/store.py
from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping, Optional, Protocol

from db.schema import AUTO_ID_TABLES, TABLES, UNIQUE_KEYS


class DuplicateRowError(Exception):
    """A write would break a unique key (mirrors the database constraint)."""


class RowReader(Protocol):
    async def select(self, table: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]: ...


class RowWriter(RowReader, Protocol):
    async def insert(self, table: str, row: Mapping[str, Any]) -> int: ...

    async def update(self, table: str, filters: Mapping[str, Any], changes: Mapping[str, Any]) -> int: ...


class RowStore(ABC):
    """
    Row-oriented storage the bracket core runs on.

    - select/insert/update work on one table at a time with equality filters
    - transaction() groups writes; they become visible all at once or not at all
    - snapshot() gives a read view that stays consistent across several selects
    """

    @abstractmethod
    async def select(self, table: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def insert(self, table: str, row: Mapping[str, Any]) -> int: ...

    @abstractmethod
    async def update(self, table: str, filters: Mapping[str, Any], changes: Mapping[str, Any]) -> int: ...

    @abstractmethod
    def transaction(self) -> Any:
        """Async context manager yielding a RowWriter."""

    @abstractmethod
    def snapshot(self) -> Any:
        """Async context manager yielding a RowReader."""

    async def close(self) -> None:
        return None


def _check_table(table: str) -> None:
    if table not in TABLES:
        raise KeyError(f"Unknown table: {table}")


def _matches(row: Mapping[str, Any], filters: Mapping[str, Any] | None) -> bool:
    if not filters:
        return True
    return all(row.get(k) == v for k, v in filters.items())


def _select(tables: Mapping[str, list[dict]], table: str, filters: Mapping[str, Any] | None) -> list[dict[str, Any]]:
    _check_table(table)
    return [dict(r) for r in tables[table] if _matches(r, filters)]


class _MemoryReader:
    def __init__(self, tables: Mapping[str, list[dict]]) -> None:
        self._tables = tables

    async def select(self, table: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        return _select(self._tables, table, filters)


class _MemoryTx(_MemoryReader):
    """
    Buffered writes. Reads inside the transaction see its own writes; the
    store only sees them on commit, replayed against its latest tables.
    """

    def __init__(self, store: "MemoryStore") -> None:
        super().__init__({t: list(rows) for t, rows in store._tables.items()})
        self._store = store
        self.ops: list[tuple[str, str, Any]] = []

    async def insert(self, table: str, row: Mapping[str, Any]) -> int:
        _check_table(table)
        full = dict(row)
        auto = AUTO_ID_TABLES.get(table)
        if auto and full.get(auto) is None:
            full[auto] = self._store._allocate(table)
        _apply_insert(self._tables, table, full)
        self.ops.append(("insert", table, full))
        return int(full[auto]) if auto else int(full.get("id") or 0)

    async def update(self, table: str, filters: Mapping[str, Any], changes: Mapping[str, Any]) -> int:
        _check_table(table)
        n = _apply_update(self._tables, table, dict(filters), dict(changes))
        self.ops.append(("update", table, (dict(filters), dict(changes))))
        return n


def _apply_insert(tables: dict[str, list[dict]], table: str, row: dict) -> None:
    for key in UNIQUE_KEYS.get(table, ()):
        probe = {k: row.get(k) for k in key}
        if any(_matches(r, probe) for r in tables[table]):
            raise DuplicateRowError(f"Duplicate {table} row for {probe}")
    tables[table].append(row)


def _apply_update(tables: dict[str, list[dict]], table: str, filters: dict, changes: dict) -> int:
    n = 0
    rows = tables[table]
    for i, r in enumerate(rows):
        if _matches(r, filters):
            rows[i] = {**r, **changes}  # replace, never mutate: snapshots share row dicts
            n += 1
    return n


class MemoryStore(RowStore):
    """
    In-process store. Commits swap in a fresh set of table lists in one
    synchronous step, so an open snapshot keeps the tables it started with
    and never sees half of a transaction.
    """

    def __init__(self) -> None:
        self._tables: dict[str, list[dict]] = {t: [] for t in TABLES}
        self._counters: dict[str, itertools.count] = {t: itertools.count(1) for t in AUTO_ID_TABLES}

    def _allocate(self, table: str) -> int:
        return next(self._counters[table])

    async def select(self, table: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        return _select(self._tables, table, filters)

    async def insert(self, table: str, row: Mapping[str, Any]) -> int:
        async with self.transaction() as tx:
            return await tx.insert(table, row)

    async def update(self, table: str, filters: Mapping[str, Any], changes: Mapping[str, Any]) -> int:
        async with self.transaction() as tx:
            return await tx.update(table, filters, changes)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_MemoryTx]:
        tx = _MemoryTx(self)
        yield tx
        self._commit(tx)

    @asynccontextmanager
    async def snapshot(self) -> AsyncIterator[_MemoryReader]:
        yield _MemoryReader(self._tables)

    def _commit(self, tx: _MemoryTx) -> None:
        if not tx.ops:
            return
        tables = {t: list(rows) for t, rows in self._tables.items()}
        for op, table, payload in tx.ops:
            if op == "insert":
                _apply_insert(tables, table, payload)
            else:
                filters, changes = payload
                _apply_update(tables, table, filters, changes)
        self._tables = tables

    def count(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> int:
        _check_table(table)
        return sum(1 for r in self._tables[table] if _matches(r, filters))
