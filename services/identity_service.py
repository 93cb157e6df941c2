# services/identity_service.py
from __future__ import annotations

import logging
from typing import Optional

from db.store import DuplicateRowError, RowWriter
from domain.errors import AliasCollision, AliasNotFound, ValidationError
from repositories.alias_repo import AliasRepo

log = logging.getLogger(__name__)


def normalize_external_id(external_id: str) -> str:
    v = str(external_id or "").strip()
    if not v:
        raise ValidationError("External id cannot be blank.")
    if len(v) > 191:
        raise ValidationError("External id is limited to 191 characters.")
    return v


class IdentityService:
    """
    Maps caller-chosen external ids (slugs, Discord thread ids, ...) to
    stage ids through an explicit table.

    The mapping is a bijection: an external id names at most one stage and
    a stage has at most one external id. Nothing is derived by hashing, so
    two ids can never collide by accident.
    """

    def __init__(self, alias_repo: AliasRepo) -> None:
        self._repo = alias_repo

    async def register(self, external_id: str, stage_id: int, *, writer: RowWriter | None = None) -> None:
        """
        Bind external_id <-> stage_id. Registering the same pair again is a
        no-op; binding either side to something else raises AliasCollision.

        Pass `writer` to register inside the transaction that creates the stage.
        """
        ext = normalize_external_id(external_id)

        if writer is None:
            async with self._repo.store.transaction() as tx:
                await self._register(tx, ext, stage_id)
        else:
            await self._register(writer, ext, stage_id)

    async def _register(self, tx: RowWriter, ext: str, stage_id: int) -> None:
        bound_stage = await self._repo.get_by_external(ext, rows=tx)
        bound_ext = await self._repo.get_by_stage(stage_id, rows=tx)

        if bound_stage == stage_id and bound_ext == ext:
            return
        if bound_stage is not None:
            raise AliasCollision(f"External id {ext!r} already names stage {bound_stage}.", stage_id=stage_id)
        if bound_ext is not None:
            raise AliasCollision(f"Stage {stage_id} is already registered as {bound_ext!r}.", stage_id=stage_id)

        try:
            await self._repo.insert(tx, ext, stage_id)
        except DuplicateRowError as e:
            raise AliasCollision(f"External id {ext!r} was registered concurrently.", stage_id=stage_id) from e
        log.info("Registered external id %r for stage %s", ext, stage_id)

    async def resolve(self, external_id: str) -> int:
        ext = normalize_external_id(external_id)
        stage_id = await self._repo.get_by_external(ext)
        if stage_id is None:
            raise AliasNotFound(f"No stage is registered as {ext!r}.")
        return stage_id

    async def external_id_for(self, stage_id: int) -> Optional[str]:
        return await self._repo.get_by_stage(stage_id)
