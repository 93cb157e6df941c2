# services/bracket_service.py
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping, Optional, Sequence

from db.store import RowStore
from domain.errors import MatchNotFound, ValidationError
from domain.models import Match, MatchUpdate, Slot, StageSettings, StageState
from repositories.alias_repo import AliasRepo
from repositories.stage_repo import StageRepo
from services import notify_service as events
from services.bracket_factory import BracketFactory, parse_format
from services.identity_service import IdentityService, normalize_external_id
from services.notify_service import LoggingSink, Notifier
from services.progression_service import ProgressionService
from services.reset_service import ResetService
from services.seeding_service import SeedingService
from services.stats_service import StageProgress, Standing, StatsService

log = logging.getLogger(__name__)


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class StageLocks:
    """
    One asyncio.Lock per stage id while someone holds or waits for it.

    The entry is dropped when its last user leaves, so ids that name no
    stage (typos from chat commands) do not accumulate.
    """

    def __init__(self) -> None:
        self._locks: dict[int, _LockEntry] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, stage_id: int) -> AsyncIterator[None]:
        entry = self._locks.get(stage_id)
        if entry is None:
            entry = self._locks[stage_id] = _LockEntry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[stage_id]


# -------------------------
# Read model
# -------------------------

def _opponent(state: StageState, match: Match, index: int) -> dict[str, Any]:
    slot: Slot = match.slot(index)
    result = None
    if match.winner_slot is not None and slot.participant_id is not None:
        result = "win" if match.winner_slot == index else "loss"
    return {
        "id": slot.participant_id,
        "name": state.participant_name(slot.participant_id),
        "origin": slot.origin.value,
        "sourceMatchId": slot.source_match_id,
        "score": match.score1 if index == 1 else match.score2,
        "result": result,
    }


@dataclass(frozen=True)
class StageView:
    state: StageState
    external_id: Optional[str] = None

    @property
    def id(self) -> int:
        return self.state.stage.id

    def as_dict(self) -> dict[str, Any]:
        st = self.state
        s = st.stage
        return {
            "stage": {
                "id": s.id,
                "externalId": self.external_id,
                "name": s.name,
                "format": s.format.value,
                "status": s.status.value,
                "participantCount": s.participant_count,
                "seeding": s.seeding,
                "settings": s.settings.to_dict(),
                "winnerId": s.winner_id,
            },
            "participants": [{"id": p.id, "name": p.name, "seed": p.seed_position} for p in st.participants],
            "groups": [{"id": g.id, "kind": g.kind.value, "number": g.number} for g in st.groups],
            "rounds": [{"id": r.id, "groupId": r.group_id, "number": r.number} for r in st.rounds],
            "matches": [
                {
                    "id": m.id,
                    "code": st.code(m),
                    "groupId": m.group_id,
                    "roundId": m.round_id,
                    "position": m.position,
                    "status": m.status.value,
                    "opponent1": _opponent(st, m, 1),
                    "opponent2": _opponent(st, m, 2),
                    "winnerSlot": m.winner_slot,
                    "forwardWinner": [m.forward_winner.match_id, m.forward_winner.slot] if m.forward_winner else None,
                    "forwardLoser": [m.forward_loser.match_id, m.forward_loser.slot] if m.forward_loser else None,
                }
                for m in st.ordered_matches()
            ],
        }


class BracketService:
    """
    The bracket core's single entry point.

    Writes (create, report, reset) run under a per-stage lock and commit in
    one store transaction: the stage is loaded, changed in memory and only
    the rows that changed are written back. Reads run against a store
    snapshot and never wait for writers.

    Events go through the Notifier after the write committed.
    """

    def __init__(
        self,
        store: RowStore,
        *,
        notifier: Notifier | None = None,
        seeding: SeedingService | None = None,
        factory: BracketFactory | None = None,
        stats: StatsService | None = None,
        default_seeding: str = "natural",
    ) -> None:
        self._store = store
        self._stages = StageRepo(store)
        self._aliases = AliasRepo(store)
        self._identity = IdentityService(self._aliases)
        self._notifier = notifier if notifier is not None else Notifier(LoggingSink())
        self._seeding = seeding or SeedingService()
        self._factory = factory or BracketFactory()
        self._stats = stats or StatsService()
        self._progression = ProgressionService(self._stats)
        self._resets = ResetService(self._factory)
        self._default_seeding = default_seeding

        self._locks = StageLocks()
        self._create_lock = asyncio.Lock()

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @property
    def identity(self) -> IdentityService:
        return self._identity

    @property
    def locks(self) -> StageLocks:
        return self._locks

    # -------------------------
    # Writes
    # -------------------------

    async def create_bracket(
        self,
        name: str,
        format: str,
        participants: Sequence[str],
        seeding: Optional[str] = None,
        settings: StageSettings | Mapping[str, Any] | None = None,
        external_id: Optional[str] = None,
    ) -> StageView:
        name = str(name or "").strip()
        if not name:
            raise ValidationError("Stage name cannot be blank.")
        fmt = parse_format(format)
        cfg = settings if isinstance(settings, StageSettings) else StageSettings.from_mapping(settings)
        ext = normalize_external_id(external_id) if external_id is not None else None
        strategy = seeding or self._default_seeding

        seeded = self._seeding.seed(list(participants), strategy, seed_ordering=cfg.seed_ordering)
        state = self._factory.build(name=name, format=fmt, participants=seeded, settings=cfg, seeding=strategy)

        async with self._create_lock:
            async with self._store.transaction() as tx:
                stage_id = await self._stages.insert_state(tx, state)
                if ext is not None:
                    await self._identity.register(ext, stage_id, writer=tx)

        log.info(
            "Created %s stage %s %r with %d participants (%d matches)",
            fmt.value,
            stage_id,
            name,
            len(seeded),
            len(state.matches),
        )
        self._notifier.emit(events.tournament_created(state))
        return StageView(state, ext)

    async def report_result(self, stage_id: int, match_id: int, update: MatchUpdate | Mapping[str, Any]) -> Match:
        """
        Record one result and propagate it. Either every consequence is
        persisted or nothing is; a failure emits tournament-error and is
        re-raised.
        """
        try:
            upd = update if isinstance(update, MatchUpdate) else MatchUpdate.from_mapping(update)
            async with self._locks.hold(stage_id):
                async with self._store.transaction() as tx:
                    state = await self._stages.load(stage_id, rows=tx)
                    prog = self._progression.apply(state, match_id, upd)
                    await self._stages.save(tx, state, prog.touched, stage=prog.stage_changed)
        except Exception as e:
            log.warning("Report on stage %s match %s failed: %s", stage_id, match_id, e)
            self._notifier.emit(events.tournament_error(stage_id, str(e)))
            raise

        self._notifier.emit(events.match_updated(state, prog.match))
        if prog.round_progress is not None:
            self._notifier.emit(events.bracket_progression(stage_id, prog.round_progress))
        if prog.completed:
            self._notifier.emit(events.tournament_completed(state))
        return prog.match

    async def reset_stage(self, stage_id: int) -> None:
        async with self._locks.hold(stage_id):
            async with self._store.transaction() as tx:
                state = await self._stages.load(stage_id, rows=tx)
                out = self._resets.reset(state)
                await self._stages.save(tx, state, out.touched, stage=out.stage_changed)

    # -------------------------
    # Reads
    # -------------------------

    async def _snapshot_state(self, stage_id: int) -> tuple[StageState, Optional[str]]:
        async with self._store.snapshot() as snap:
            state = await self._stages.load(stage_id, rows=snap)
            ext = await self._aliases.get_by_stage(stage_id, rows=snap)
        return state, ext

    async def get_stage(self, stage_id: int) -> StageView:
        state, ext = await self._snapshot_state(stage_id)
        return StageView(state, ext)

    async def get_matches(self, stage_id: int) -> list[Match]:
        state, _ = await self._snapshot_state(stage_id)
        return list(state.ordered_matches())

    async def get_match(self, stage_id: int, ref: int | str) -> tuple[StageState, Match]:
        """Look a match up by id or by its bracket code (W1-01, L2-03, GF-01, RR3-02)."""
        state, _ = await self._snapshot_state(stage_id)
        match: Optional[Match] = None
        if isinstance(ref, int) or str(ref).strip().isdigit():
            match = state.matches.get(int(ref))
        else:
            try:
                match = state.find_by_code(str(ref))
            except ValueError:
                match = None
        if match is None:
            raise MatchNotFound(f"Match {ref!r} not found in stage {stage_id}.", stage_id=stage_id)
        return state, match

    async def compute_standings(self, stage_id: int) -> list[Standing]:
        state, _ = await self._snapshot_state(stage_id)
        return self._stats.compute_standings(state)

    async def compute_progress(self, stage_id: int) -> StageProgress:
        state, _ = await self._snapshot_state(stage_id)
        return self._stats.compute_progress(state)

    async def resolve_stage(self, external_id: str) -> int:
        return await self._identity.resolve(external_id)

    async def list_stages(self) -> list[int]:
        return await self._stages.list_stage_ids()
