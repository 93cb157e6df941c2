"""
Unit tests for the MySQL store's SQL builders and cursor adapter (no database needed).
"""

import asyncio

import aiomysql
import pytest

from db.mysql_store import _CursorRows, build_insert, build_select, build_update
from db.schema import DDL, TABLES
from db.store import DuplicateRowError


class FakeCursor:
    def __init__(self, rows=None, fail=None):
        self.executed = []
        self.rows = rows or []
        self.fail = fail
        self.lastrowid = 41
        self.rowcount = 1

    async def execute(self, sql, params=None):
        self.executed.append((sql, params))
        if self.fail is not None:
            raise self.fail

    async def fetchall(self):
        return self.rows


def test_select_with_filters_and_null():
    sql, params = build_select("stage_alias", {"external_id": "cup", "stage_id": None})
    assert sql == "SELECT `external_id`, `stage_id` FROM `stage_alias` WHERE `external_id`=%s AND `stage_id` IS NULL;"
    assert params == ["cup"]


def test_select_orders_by_id_when_table_has_one():
    sql, params = build_select("stage_match", {"stage_id": 3})
    assert sql.endswith(" WHERE `stage_id`=%s ORDER BY `id`;")
    assert params == [3]


def test_insert_skips_auto_id():
    sql, params = build_insert("stage", {"id": None, "name": "Cup", "status": "pending"})
    assert sql == "INSERT INTO `stage` (`name`, `status`) VALUES (%s, %s);"
    assert params == ["Cup", "pending"]


def test_update_puts_set_params_first():
    sql, params = build_update("stage", {"id": 5}, {"status": "running", "winner_id": None})
    assert sql == "UPDATE `stage` SET `status`=%s, `winner_id`=%s WHERE `id`=%s;"
    assert params == ["running", None, 5]


def test_update_requires_filters_and_changes():
    with pytest.raises(ValueError):
        build_update("stage", {}, {"status": "running"})
    with pytest.raises(ValueError):
        build_update("stage", {"id": 1}, {})


def test_unknown_columns_are_refused():
    with pytest.raises(KeyError):
        build_select("stage", {"id; DROP TABLE stage": 1})
    with pytest.raises(KeyError):
        build_insert("stage_alias", {"external_id": "x", "bogus": 1})


def test_cursor_rows_insert_returns_generated_id():
    async def run():
        cur = FakeCursor()
        rows = _CursorRows(cur)
        assert await rows.insert("stage", {"id": None, "name": "Cup"}) == 41
        assert await rows.insert("participant", {"stage_id": 41, "id": 3, "name": "A", "seed_position": 1}) == 3

    asyncio.run(run())


def test_cursor_rows_maps_integrity_errors():
    async def run():
        rows = _CursorRows(FakeCursor(fail=aiomysql.IntegrityError(1062, "Duplicate entry")))
        with pytest.raises(DuplicateRowError):
            await rows.insert("stage_alias", {"external_id": "x", "stage_id": 1})

    asyncio.run(run())


def test_cursor_rows_select_returns_dicts():
    async def run():
        cur = FakeCursor(rows=[{"external_id": "x", "stage_id": 1}])
        assert await _CursorRows(cur).select("stage_alias", {"stage_id": 1}) == [{"external_id": "x", "stage_id": 1}]

    asyncio.run(run())


def test_ddl_covers_every_table():
    ddl = "\n".join(DDL)
    for table in TABLES:
        assert f"CREATE TABLE IF NOT EXISTS {table} (" in ddl
