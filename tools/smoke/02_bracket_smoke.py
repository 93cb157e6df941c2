from __future__ import annotations

import os, sys
from uuid import uuid4

HERE = os.path.dirname(__file__)
ROOT = os.path.abspath(os.path.join(HERE, "..", ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import asyncio
import logging
from config import load_config
from db.mysql_store import MySqlStore
from db.pool import DbPool
from domain.enums import MatchStatus, StageStatus
from domain.models import MatchUpdate
from renderers.bracket_view import BracketView
from services.bracket_service import BracketService

async def main() -> None:
    cfg = load_config()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    run_id = os.getenv("SMOKE_RUN_ID") or f"smk_{uuid4().hex[:10]}"

    db = DbPool(cfg.mysql)
    await db.open()
    store = MySqlStore(db)
    brackets = BracketService(store)

    try:
        view = await brackets.create_bracket(
            f"SMOKE_STAGE_{run_id}",
            "double_elimination",
            ["Alpha", "Bravo", "Charlie", "Delta", "Echo"],
            external_id=run_id,
        )
        stage_id = view.id
        assert await brackets.resolve_stage(run_id) == stage_id

        # Always let the top slot win until the stage is done.
        reported = 0
        while True:
            matches = await brackets.get_matches(stage_id)
            ready = [m for m in matches if m.status == MatchStatus.READY]
            if not ready:
                break
            await brackets.report_result(stage_id, ready[0].id, MatchUpdate.scores(2, 1))
            reported += 1

        final = await brackets.get_stage(stage_id)
        assert final.state.stage.status == StageStatus.COMPLETED, final.state.stage.status
        print(BracketView().render(final.state))
        print(f"OK: reported {reported} matches, winner participant {final.state.stage.winner_id}")

        await brackets.reset_stage(stage_id)
        again = await brackets.get_stage(stage_id)
        assert again.state.stage.status == StageStatus.PENDING
        assert not any(m.status == MatchStatus.COMPLETED for m in again.state.matches.values())
        print(f"OK: stage {stage_id} reset.")
    finally:
        await brackets.notifier.drain()
        await store.close()

if __name__ == "__main__":
    asyncio.run(main())
