# services/notify_service.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from domain.enums import MatchResult
from domain.models import Match, StageState
from services.stats_service import RoundProgress

log = logging.getLogger(__name__)

TOURNAMENT_CREATED = "tournament-created"
MATCH_UPDATED = "match-updated"
BRACKET_PROGRESSION = "bracket-progression"
TOURNAMENT_COMPLETED = "tournament-completed"
TOURNAMENT_ERROR = "tournament-error"

ALL_EVENTS = (TOURNAMENT_CREATED, MATCH_UPDATED, BRACKET_PROGRESSION, TOURNAMENT_COMPLETED, TOURNAMENT_ERROR)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Notification:
    name: str
    payload: dict[str, Any]
    stage_id: Optional[int] = None
    at: str = field(default_factory=_now)


class EventSink(Protocol):
    async def publish(self, event: Notification) -> None: ...


class LoggingSink:
    """Default sink: writes every event to the log."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    async def publish(self, event: Notification) -> None:
        log.log(self._level, "event %s stage=%s %s", event.name, event.stage_id, event.payload)


class Notifier:
    """
    Fire-and-forget delivery to one or more sinks.

    emit() schedules delivery on the running loop and returns immediately.
    A failing sink is logged and otherwise ignored: events never decide
    whether a bracket operation succeeded.
    """

    def __init__(self, *sinks: EventSink) -> None:
        self._sinks: list[EventSink] = list(sinks)
        self._pending: set[asyncio.Task] = set()

    def add_sink(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    def emit(self, event: Notification) -> None:
        if not self._sinks:
            return
        for sink in self._sinks:
            task = asyncio.create_task(self._deliver(sink, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, sink: EventSink, event: Notification) -> None:
        try:
            await sink.publish(event)
        except Exception:
            log.exception("Event sink %s failed on %s (stage %s)", type(sink).__name__, event.name, event.stage_id)

    async def drain(self) -> None:
        """Wait for every scheduled delivery (tests and shutdown)."""
        while self._pending:
            await asyncio.gather(*list(self._pending))


# -------------------------
# Event builders
# -------------------------

def tournament_created(state: StageState) -> Notification:
    s = state.stage
    return Notification(
        TOURNAMENT_CREATED,
        {
            "id": s.id,
            "name": s.name,
            "format": s.format.value,
            "participants": [p.name for p in sorted(state.participants, key=lambda p: p.seed_position)],
        },
        stage_id=s.id,
    )


def _slot_update(state: StageState, match: Match, index: int) -> dict[str, Any]:
    slot = match.slot(index)
    result = None
    if match.winner_slot is not None and slot.participant_id is not None:
        result = MatchResult.WIN.value if match.winner_slot == index else MatchResult.LOSS.value
    return {
        "id": slot.participant_id,
        "name": state.participant_name(slot.participant_id),
        "score": match.score1 if index == 1 else match.score2,
        "result": result,
    }


def match_updated(state: StageState, match: Match) -> Notification:
    return Notification(
        MATCH_UPDATED,
        {
            "stageId": state.stage.id,
            "matchId": match.id,
            "match": state.code(match),
            "slot1Update": _slot_update(state, match, 1),
            "slot2Update": _slot_update(state, match, 2),
        },
        stage_id=state.stage.id,
    )


def bracket_progression(stage_id: int, progress: RoundProgress) -> Notification:
    return Notification(
        BRACKET_PROGRESSION,
        {
            "stageId": stage_id,
            "roundId": progress.round_id,
            "completedMatches": progress.completed,
            "totalMatches": progress.total,
            "progressPercent": progress.percent,
        },
        stage_id=stage_id,
    )


def tournament_completed(state: StageState) -> Notification:
    winner = state.participant(state.stage.winner_id)
    return Notification(
        TOURNAMENT_COMPLETED,
        {
            "stageId": state.stage.id,
            "winner": {"id": winner.id, "name": winner.name} if winner else None,
        },
        stage_id=state.stage.id,
    )


def tournament_error(stage_id: Optional[int], message: str) -> Notification:
    return Notification(TOURNAMENT_ERROR, {"stageId": stage_id, "message": message}, stage_id=stage_id)
