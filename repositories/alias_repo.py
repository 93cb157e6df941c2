# repositories/alias_repo.py
from __future__ import annotations

from typing import Optional

from db.store import RowReader, RowWriter
from repositories.base_repo import BaseRepo


class AliasRepo(BaseRepo):
    """
    stage_alias rows: one external id per stage, one stage per external id.
    Both columns carry a unique key, so the table is a bijection.
    """

    async def get_by_external(self, external_id: str, *, rows: RowReader | None = None) -> Optional[int]:
        row = await self.fetch_one("stage_alias", {"external_id": external_id}, rows=rows)
        return int(row["stage_id"]) if row else None

    async def get_by_stage(self, stage_id: int, *, rows: RowReader | None = None) -> Optional[str]:
        row = await self.fetch_one("stage_alias", {"stage_id": int(stage_id)}, rows=rows)
        return str(row["external_id"]) if row else None

    async def insert(self, tx: RowWriter, external_id: str, stage_id: int) -> None:
        await tx.insert("stage_alias", {"external_id": external_id, "stage_id": int(stage_id)})
