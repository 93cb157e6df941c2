# services/progression_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from domain import graph
from domain.enums import GrandFinalType, GroupKind, MatchResult, MatchStatus, StageFormat, StageStatus
from domain.errors import InvalidResult, MatchNotFound, MatchNotReady, StageCompleted
from domain.models import Match, MatchUpdate, StageState
from services.stats_service import RoundProgress, StatsService

log = logging.getLogger(__name__)


@dataclass
class Progression:
    """What one reported result changed."""

    match: Match
    touched: set[int] = field(default_factory=set)
    round_progress: Optional[RoundProgress] = None
    stage_changed: bool = False
    completed: bool = False
    winner_id: Optional[int] = None
    reset_activated: bool = False


def decide_winner(update: MatchUpdate, *, stage_id: int, match_id: int) -> int:
    """
    Explicit win/loss results win over scores; both must agree.
    Without results, the higher score wins and a tie is rejected.
    """
    o1, o2 = update.opponent1, update.opponent2
    for s in (o1.score, o2.score):
        if s is not None and s < 0:
            raise InvalidResult("Scores cannot be negative.", stage_id=stage_id, match_id=match_id)

    votes: set[int] = set()
    if o1.result == MatchResult.WIN or o2.result == MatchResult.LOSS:
        votes.add(1)
    if o2.result == MatchResult.WIN or o1.result == MatchResult.LOSS:
        votes.add(2)
    if len(votes) == 2:
        raise InvalidResult("Conflicting results: both sides cannot win.", stage_id=stage_id, match_id=match_id)
    if votes:
        return votes.pop()

    if o1.score is None or o2.score is None:
        raise InvalidResult(
            "Report a win/loss result or both scores.",
            stage_id=stage_id,
            match_id=match_id,
        )
    if o1.score == o2.score:
        raise InvalidResult(
            f"Tied score {o1.score}-{o2.score} needs an explicit result.",
            stage_id=stage_id,
            match_id=match_id,
        )
    return 1 if o1.score > o2.score else 2


class ProgressionService:
    """
    Applies one match result to a loaded stage, in memory.

    Nothing here persists: the caller loads the stage, calls apply() and
    writes back `touched` matches only if apply() returned. Any error leaves
    the persisted stage untouched.
    """

    def __init__(self, stats: StatsService | None = None) -> None:
        self._stats = stats or StatsService()

    def apply(self, state: StageState, match_id: int, update: MatchUpdate) -> Progression:
        stage = state.stage
        match = state.matches.get(match_id)
        if match is None:
            raise MatchNotFound(f"Match {match_id} not found in stage {stage.id}.", stage_id=stage.id, match_id=match_id)
        if stage.status == StageStatus.COMPLETED:
            raise StageCompleted(f"Stage {stage.id} is already completed.", stage_id=stage.id, match_id=match_id)
        if match.status != MatchStatus.READY:
            raise MatchNotReady(
                f"Match {state.code(match)} is {match.status.value}, not ready.",
                stage_id=stage.id,
                match_id=match_id,
            )

        winner_slot = decide_winner(update, stage_id=stage.id, match_id=match_id)

        out = Progression(match=match)
        match.score1 = update.opponent1.score
        match.score2 = update.opponent2.score
        match.winner_slot = winner_slot
        match.status = MatchStatus.COMPLETED
        out.touched.add(match.id)

        if match.forward_winner is not None:
            graph.place(state, match.forward_winner, match.winner_id, out.touched)
        if match.forward_loser is not None:
            graph.place(state, match.forward_loser, match.loser_id, out.touched)

        if stage.status == StageStatus.PENDING:
            stage.status = StageStatus.RUNNING
            out.stage_changed = True

        finished, winner_id = self._terminal(state, match, out)
        if finished:
            stage.status = StageStatus.COMPLETED
            stage.winner_id = winner_id
            out.stage_changed = True
            out.completed = True
            out.winner_id = winner_id
            log.info("Stage %s completed, winner participant %s", stage.id, winner_id)

        out.round_progress = self._stats.round_progress(state, match.round_id)
        log.debug(
            "Stage %s match %s -> winner slot %s, touched %s",
            stage.id,
            state.code(match),
            winner_slot,
            sorted(out.touched),
        )
        return out

    # -------------------------
    # Terminal detection
    # -------------------------

    def _terminal(self, state: StageState, match: Match, out: Progression) -> tuple[bool, Optional[int]]:
        fmt = state.stage.format

        if fmt == StageFormat.ROUND_ROBIN:
            if all(m.status == MatchStatus.COMPLETED for m in state.matches.values()):
                standings = self._stats.compute_standings(state)
                return True, standings[0].participant.id if standings else None
            return False, None

        if fmt == StageFormat.SINGLE:
            if match.forward_winner is None:
                return True, match.winner_id
            return False, None

        group = state.group(match.group_id)
        if group.kind != GroupKind.GF:
            return False, None

        rnd = state.round(match.round_id)
        reset = self._reset_match(state)
        if rnd.number == 1 and reset is not None and state.stage.settings.grand_final == GrandFinalType.DOUBLE:
            if match.winner_slot == 2:
                # losers-side finalist took GF1: play the reset
                reset.slot1.fill(match.slot1.participant_id)
                reset.slot2.fill(match.slot2.participant_id)
                graph.refresh(state, reset, out.touched)
                out.touched.add(reset.id)
                out.reset_activated = True
                log.info("Stage %s grand final reset activated (%s)", state.stage.id, state.code(reset))
                return False, None

            reset.status = MatchStatus.BYE
            reset.winner_slot = None
            out.touched.add(reset.id)
        return True, match.winner_id

    def _reset_match(self, state: StageState) -> Optional[Match]:
        gf = state.group_by_kind(GroupKind.GF)
        if gf is None:
            return None
        for r in state.rounds_of(gf.id):
            if r.number == 2:
                ms = state.round_matches(r.id)
                return ms[0] if ms else None
        return None
