"""
Shared fixtures and helpers for the bracket tests.

Async code is driven with asyncio.run() inside plain test functions.
"""

from __future__ import annotations

import random
from typing import Optional

import pytest

from db.store import MemoryStore
from domain.enums import MatchStatus
from domain.models import MatchUpdate, StageSettings, StageState
from services.bracket_factory import BracketFactory
from services.bracket_service import BracketService
from services.notify_service import Notification, Notifier
from services.progression_service import Progression, ProgressionService
from services.seeding_service import SeedingService


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[Notification] = []

    async def publish(self, event: Notification) -> None:
        self.events.append(event)

    def names(self) -> list[str]:
        return [e.name for e in self.events]

    def of(self, name: str) -> list[Notification]:
        return [e for e in self.events if e.name == name]


class FailingSink:
    def __init__(self) -> None:
        self.calls = 0

    async def publish(self, event: Notification) -> None:
        self.calls += 1
        raise RuntimeError("sink is down")


def names(n: int) -> list[str]:
    return [f"P{i}" for i in range(1, n + 1)]


def build(
    format: str,
    participants: list[str],
    *,
    strategy: str = "natural",
    **settings,
) -> StageState:
    cfg = StageSettings.from_mapping(settings)
    seeded = SeedingService().seed(participants, strategy, seed_ordering=cfg.seed_ordering)
    return BracketFactory().build(
        name="T",
        format=format,
        participants=seeded,
        settings=cfg,
        seeding=strategy,
        stage_id=1,
    )


def ready(state: StageState) -> list:
    return [m for m in sorted(state.matches.values(), key=lambda m: m.id) if m.status == MatchStatus.READY]


def report(state: StageState, match_id: int, winner_slot: int, engine: Optional[ProgressionService] = None) -> Progression:
    score1, score2 = (2, 1) if winner_slot == 1 else (1, 2)
    return (engine or ProgressionService()).apply(state, match_id, MatchUpdate.scores(score1, score2))


def play_out(state: StageState, pick=lambda m: 1) -> int:
    """Report every READY match (lowest id first) until none is left."""
    engine = ProgressionService()
    n = 0
    while True:
        rs = ready(state)
        if not rs:
            return n
        report(state, rs[0].id, pick(rs[0]), engine)
        n += 1


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def service(store, sink) -> BracketService:
    return BracketService(store, notifier=Notifier(sink), seeding=SeedingService(rng=random.Random(7)))
