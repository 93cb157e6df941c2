# services/stats_service.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from domain.enums import MatchStatus
from domain.models import Participant, StageState


def _percent(done: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(done * 100.0 / total, 2)


@dataclass(frozen=True)
class Standing:
    participant: Participant
    wins: int
    losses: int
    played: int
    win_rate: float

    def as_dict(self) -> dict[str, Any]:
        return {
            "participant": self.participant.name,
            "participantId": self.participant.id,
            "seed": self.participant.seed_position,
            "wins": self.wins,
            "losses": self.losses,
            "played": self.played,
            "winRate": self.win_rate,
        }


@dataclass(frozen=True)
class RoundProgress:
    round_id: int
    completed: int
    total: int

    @property
    def percent(self) -> float:
        return _percent(self.completed, self.total)


@dataclass(frozen=True)
class StageProgress:
    total: int
    completed: int   # completed + byes
    played: int      # completed by a report
    byes: int
    pending: int

    @property
    def percent(self) -> float:
        return _percent(self.completed, self.total)

    def as_dict(self) -> dict[str, Any]:
        return {
            "totalMatches": self.total,
            "completedMatches": self.completed,
            "playedMatches": self.played,
            "byeMatches": self.byes,
            "pendingMatches": self.pending,
            "progressPercent": self.percent,
        }


class StatsService:
    """
    Read-only derivations over a stage's current match table.

    Nothing is cached or maintained incrementally: every call rescans the
    matches, so stats can never drift from the bracket itself.
    """

    def compute_standings(self, state: StageState) -> list[Standing]:
        rows: list[Standing] = []
        completed = [m for m in state.matches.values() if m.status == MatchStatus.COMPLETED]

        for p in state.participants:
            played = wins = losses = 0
            for m in completed:
                if not m.involves(p.id):
                    continue
                played += 1
                if m.winner_id == p.id:
                    wins += 1
                else:
                    losses += 1
            rows.append(
                Standing(
                    participant=p,
                    wins=wins,
                    losses=losses,
                    played=played,
                    win_rate=(wins / played) if played else 0.0,
                )
            )

        rows.sort(key=lambda s: (-s.wins, -s.win_rate, s.participant.seed_position))
        return rows

    def compute_progress(self, state: StageState) -> StageProgress:
        total = len(state.matches)
        played = sum(1 for m in state.matches.values() if m.status == MatchStatus.COMPLETED)
        byes = sum(1 for m in state.matches.values() if m.status == MatchStatus.BYE)
        return StageProgress(
            total=total,
            completed=played + byes,
            played=played,
            byes=byes,
            pending=total - played - byes,
        )

    def round_progress(self, state: StageState, round_id: int) -> RoundProgress:
        ms = state.round_matches(round_id)
        return RoundProgress(
            round_id=round_id,
            completed=sum(1 for m in ms if m.is_settled),
            total=len(ms),
        )
