from __future__ import annotations

import os, sys

HERE = os.path.dirname(__file__)
ROOT = os.path.abspath(os.path.join(HERE, "..", ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import asyncio
from config import load_config
from db.pool import DbPool
from db.schema import TABLES

async def main() -> None:
    cfg = load_config()

    db = DbPool(cfg.mysql)
    await db.open(ensure_schema=False)
    try:
        before = await db.missing_tables()
        await db.ensure_schema()
        after = await db.missing_tables()
    finally:
        await db.close()

    assert not after, f"tables still missing: {after}"
    print(f"OK: {cfg.mysql.host}:{cfg.mysql.port}/{db.database} reachable, "
          f"{len(TABLES)} bracket tables present ({len(before)} created).")

if __name__ == "__main__":
    asyncio.run(main())
