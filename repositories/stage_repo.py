# repositories/stage_repo.py
from __future__ import annotations

from typing import Any, Iterable, Mapping

from db.store import RowReader, RowWriter
from domain.enums import GroupKind, MatchStatus, SlotOrigin, StageFormat, StageStatus
from domain.errors import StageNotFound
from domain.models import (
    Forward,
    Group,
    Match,
    Participant,
    Round,
    Slot,
    Stage,
    StageSettings,
    StageState,
)
from repositories.base_repo import BaseRepo, from_json, opt_int, to_json


def _slot_row(prefix: str, s: Slot) -> dict[str, Any]:
    return {
        f"{prefix}_origin": s.origin.value,
        f"{prefix}_source": s.source_match_id,
        f"{prefix}_participant": s.participant_id,
        f"{prefix}_settled": 1 if s.settled else 0,
    }


def _slot_from_row(prefix: str, r: Mapping[str, Any]) -> Slot:
    return Slot(
        origin=SlotOrigin(str(r[f"{prefix}_origin"])),
        source_match_id=opt_int(r.get(f"{prefix}_source")),
        participant_id=opt_int(r.get(f"{prefix}_participant")),
        settled=bool(r.get(f"{prefix}_settled")),
    )


def match_state_row(m: Match) -> dict[str, Any]:
    """Columns a match can change after creation."""
    return {
        **_slot_row("slot1", m.slot1),
        **_slot_row("slot2", m.slot2),
        "status": m.status.value,
        "score1": m.score1,
        "score2": m.score2,
        "winner_slot": m.winner_slot,
    }


def match_to_row(stage_id: int, m: Match) -> dict[str, Any]:
    fw, fl = m.forward_winner, m.forward_loser
    return {
        "stage_id": stage_id,
        "id": m.id,
        "group_id": m.group_id,
        "round_id": m.round_id,
        "position": m.position,
        **match_state_row(m),
        "forward_winner_match": fw.match_id if fw else None,
        "forward_winner_slot": fw.slot if fw else None,
        "forward_loser_match": fl.match_id if fl else None,
        "forward_loser_slot": fl.slot if fl else None,
    }


def match_from_row(r: Mapping[str, Any]) -> Match:
    fw = None
    if r.get("forward_winner_match") is not None:
        fw = Forward(int(r["forward_winner_match"]), int(r["forward_winner_slot"]))
    fl = None
    if r.get("forward_loser_match") is not None:
        fl = Forward(int(r["forward_loser_match"]), int(r["forward_loser_slot"]))
    return Match(
        id=int(r["id"]),
        group_id=int(r["group_id"]),
        round_id=int(r["round_id"]),
        position=int(r["position"]),
        slot1=_slot_from_row("slot1", r),
        slot2=_slot_from_row("slot2", r),
        status=MatchStatus(str(r["status"])),
        score1=opt_int(r.get("score1")),
        score2=opt_int(r.get("score2")),
        winner_slot=opt_int(r.get("winner_slot")),
        forward_winner=fw,
        forward_loser=fl,
    )


def stage_from_row(r: Mapping[str, Any]) -> Stage:
    return Stage(
        id=int(r["id"]),
        name=str(r["name"]),
        format=StageFormat(str(r["format"])),
        participant_count=int(r["participant_count"]),
        settings=StageSettings.from_mapping(from_json(r.get("settings"))),
        seeding=str(r.get("seeding") or "natural"),
        status=StageStatus(str(r["status"])),
        winner_id=opt_int(r.get("winner_id")),
    )


class StageRepo(BaseRepo):
    """Stage aggregate persistence: stage + participants + groups + rounds + matches."""

    async def insert_state(self, tx: RowWriter, state: StageState) -> int:
        """Persists a freshly built stage. Assigns and returns the new stage id."""
        s = state.stage
        stage_id = await tx.insert(
            "stage",
            {
                "id": None,
                "name": s.name,
                "format": s.format.value,
                "participant_count": s.participant_count,
                "seeding": s.seeding,
                "settings": to_json(s.settings.to_dict()),
                "status": s.status.value,
                "winner_id": s.winner_id,
            },
        )
        s.id = stage_id

        for p in state.participants:
            await tx.insert(
                "participant",
                {"stage_id": stage_id, "id": p.id, "name": p.name, "seed_position": p.seed_position},
            )
        for g in state.groups:
            await tx.insert("stage_group", {"stage_id": stage_id, "id": g.id, "kind": g.kind.value, "number": g.number})
        for r in state.rounds:
            await tx.insert("stage_round", {"stage_id": stage_id, "id": r.id, "group_id": r.group_id, "number": r.number})
        for mid in sorted(state.matches):
            await tx.insert("stage_match", match_to_row(stage_id, state.matches[mid]))
        return stage_id

    async def get_stage(self, stage_id: int, *, rows: RowReader | None = None) -> Stage | None:
        row = await self.fetch_one("stage", {"id": int(stage_id)}, rows=rows)
        return stage_from_row(row) if row else None

    async def load(self, stage_id: int, *, rows: RowReader | None = None) -> StageState:
        stage = await self.get_stage(stage_id, rows=rows)
        if stage is None:
            raise StageNotFound(f"Stage {stage_id} not found.", stage_id=stage_id)

        key = {"stage_id": stage.id}
        participants = [
            Participant(id=int(r["id"]), name=str(r["name"]), seed_position=int(r["seed_position"]))
            for r in await self.fetch_all("participant", key, rows=rows)
        ]
        participants.sort(key=lambda p: p.id)
        groups = sorted(
            (
                Group(id=int(r["id"]), kind=GroupKind(str(r["kind"])), number=int(r["number"]))
                for r in await self.fetch_all("stage_group", key, rows=rows)
            ),
            key=lambda g: g.id,
        )
        rounds = sorted(
            (
                Round(id=int(r["id"]), group_id=int(r["group_id"]), number=int(r["number"]))
                for r in await self.fetch_all("stage_round", key, rows=rows)
            ),
            key=lambda r: r.id,
        )
        matches = {m.id: m for m in (match_from_row(r) for r in await self.fetch_all("stage_match", key, rows=rows))}

        return StageState(stage=stage, participants=participants, groups=groups, rounds=rounds, matches=matches)

    async def save(
        self,
        tx: RowWriter,
        state: StageState,
        match_ids: Iterable[int],
        *,
        stage: bool = False,
    ) -> None:
        sid = state.stage.id
        for mid in sorted(set(match_ids)):
            await tx.update("stage_match", {"stage_id": sid, "id": mid}, match_state_row(state.matches[mid]))
        if stage:
            await tx.update(
                "stage",
                {"id": sid},
                {"status": state.stage.status.value, "winner_id": state.stage.winner_id},
            )

    async def list_stage_ids(self, *, rows: RowReader | None = None) -> list[int]:
        return sorted(int(r["id"]) for r in await self._rows(rows).select("stage", None))
