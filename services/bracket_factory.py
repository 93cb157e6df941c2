# services/bracket_factory.py
from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

from domain import graph
from domain.enums import GrandFinalType, GroupKind, SeedingStrategy, StageFormat
from domain.errors import InvalidParticipantCount, MalformedBracket, UnknownFormat
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
    next_power_of_two,
    seeded_positions,
)
from services.seeding_service import reorder

log = logging.getLogger(__name__)


# Orderings applied to winners-bracket losers as they drop into the losers
# bracket (WB round 2, 3, 4, 5, ... cycles). Keeps players from meeting the
# opponent they just played in the winners bracket.
_DROP_ORDERINGS = (
    SeedingStrategy.REVERSE,
    SeedingStrategy.HALF_SHIFT,
    SeedingStrategy.REVERSE_HALF_SHIFT,
    SeedingStrategy.NATURAL,
)


def parse_format(value: str | StageFormat) -> StageFormat:
    if isinstance(value, StageFormat):
        return value
    v = str(value or "").strip().lower()
    aliases = {
        "single_elim": StageFormat.SINGLE,
        "double_elim": StageFormat.DOUBLE,
        "rr": StageFormat.ROUND_ROBIN,
    }
    if v in aliases:
        return aliases[v]
    try:
        return StageFormat(v)
    except ValueError as e:
        raise UnknownFormat(
            f"format must be one of {', '.join(f.value for f in StageFormat)}, got: {value!r}"
        ) from e


def first_round_slots(participants: Sequence[Participant], size: int, *, balance_byes: bool) -> list[Slot]:
    """
    Lay seeded participants into `size` bracket slots.

    Seeds 1 and 2 always land in opposite halves. With balance_byes the
    byes take the places of the missing seeds (N+1..size) and so face the
    top seeds; without it the byes fill the last slots.
    """
    by_seed = {p.seed_position: p for p in participants}
    order = seeded_positions(size)
    if balance_byes:
        return [Slot.seed(by_seed[s].id) if s in by_seed else Slot.bye() for s in order]
    placed = [by_seed[s] for s in order if s in by_seed]
    return [Slot.seed(p.id) for p in placed] + [Slot.bye() for _ in range(size - len(placed))]


class _Builder:
    def __init__(self, stage: Stage, participants: Sequence[Participant]) -> None:
        self.state = StageState(stage=stage, participants=list(participants), groups=[], rounds=[], matches={})

    def group(self, kind: GroupKind) -> Group:
        g = Group(id=len(self.state.groups) + 1, kind=kind, number=len(self.state.groups) + 1)
        self.state.groups.append(g)
        return g

    def round(self, group: Group, number: int) -> Round:
        r = Round(id=len(self.state.rounds) + 1, group_id=group.id, number=number)
        self.state.rounds.append(r)
        return r

    def match(self, group: Group, rnd: Round, position: int, slot1: Slot, slot2: Slot) -> Match:
        m = Match(
            id=len(self.state.matches) + 1,
            group_id=group.id,
            round_id=rnd.id,
            position=position,
            slot1=slot1,
            slot2=slot2,
        )
        self.state.matches[m.id] = m
        return m

    # -------------------------
    # Elimination trees
    # -------------------------

    def winners_tree(self, group: Group, slots: list[Slot]) -> list[list[Match]]:
        size = len(slots)
        tree: list[list[Match]] = []
        prev: Optional[list[Match]] = None

        for r in range(1, int(math.log2(size)) + 1):
            rnd = self.round(group, r)
            cur: list[Match] = []
            for i in range(size >> r):
                if prev is None:
                    s1, s2 = slots[2 * i], slots[2 * i + 1]
                else:
                    s1, s2 = Slot.winner_of(prev[2 * i].id), Slot.winner_of(prev[2 * i + 1].id)
                cur.append(self.match(group, rnd, i, s1, s2))
            if prev is not None:
                for i, m in enumerate(prev):
                    m.forward_winner = Forward(cur[i // 2].id, i % 2 + 1)
            tree.append(cur)
            prev = cur
        return tree

    def losers_tree(self, group: Group, wb: list[list[Match]]) -> Match:
        """
        Losers bracket for a winners bracket of k >= 2 rounds, 2(k-1) rounds:
          L1        losers of W1, paired
          L(2j)     winner of L(2j-1) vs a loser dropping from W(j+1)
          L(2j+1)   winners of L(2j), paired
        Returns the losers-bracket final.
        """
        k = len(wb)
        number = 1
        rnd = self.round(group, number)
        prev: list[Match] = []
        w1 = wb[0]
        for i in range(len(w1) // 2):
            a, b = w1[2 * i], w1[2 * i + 1]
            m = self.match(group, rnd, i, Slot.loser_of(a.id), Slot.loser_of(b.id))
            a.forward_loser = Forward(m.id, 1)
            b.forward_loser = Forward(m.id, 2)
            prev.append(m)

        for r in range(2, k + 1):
            number += 1
            rnd = self.round(group, number)
            dropped = reorder(wb[r - 1], _DROP_ORDERINGS[(r - 2) % len(_DROP_ORDERINGS)])
            if len(dropped) != len(prev):
                raise MalformedBracket(
                    f"Losers round {number} expects {len(prev)} drops, winners round {r} has {len(dropped)}.",
                    stage_id=self.state.stage.id,
                )
            cur: list[Match] = []
            for i, (src, drop) in enumerate(zip(prev, dropped)):
                m = self.match(group, rnd, i, Slot.winner_of(src.id), Slot.loser_of(drop.id))
                src.forward_winner = Forward(m.id, 1)
                drop.forward_loser = Forward(m.id, 2)
                cur.append(m)
            prev = cur

            if r < k:
                number += 1
                rnd = self.round(group, number)
                cur = []
                for i in range(len(prev) // 2):
                    a, b = prev[2 * i], prev[2 * i + 1]
                    m = self.match(group, rnd, i, Slot.winner_of(a.id), Slot.winner_of(b.id))
                    a.forward_winner = Forward(m.id, 1)
                    b.forward_winner = Forward(m.id, 2)
                    cur.append(m)
                prev = cur

        return prev[0]


class BracketFactory:
    """
    Builds the full, wired match graph for a stage.

    The factory never touches storage: it returns an in-memory StageState
    whose ids are stage-local and deterministic for a given seeded list and
    settings, so rebuilding always yields the same structure.
    """

    def build(
        self,
        *,
        name: str,
        format: str | StageFormat,
        participants: Sequence[Participant],
        settings: StageSettings | None = None,
        seeding: str = SeedingStrategy.NATURAL.value,
        stage_id: int = 0,
    ) -> StageState:
        fmt = parse_format(format)
        if len(participants) < 2:
            raise InvalidParticipantCount(
                f"A bracket needs at least 2 participants, got {len(participants)}.",
                stage_id=stage_id or None,
            )

        cfg = settings or StageSettings()
        stage = Stage(
            id=stage_id,
            name=name,
            format=fmt,
            participant_count=len(participants),
            settings=cfg,
            seeding=str(seeding.value if isinstance(seeding, SeedingStrategy) else seeding),
        )
        b = _Builder(stage, participants)

        exempt: set[int] = set()
        if fmt == StageFormat.SINGLE:
            self._single(b, cfg)
        elif fmt == StageFormat.DOUBLE:
            reset = self._double(b, cfg)
            if reset is not None:
                exempt.add(reset.id)
        else:
            self._round_robin(b, cfg)

        state = b.state
        graph.validate(state, exempt=exempt)

        touched: set[int] = set()
        for mid in sorted(state.matches):
            graph.refresh(state, state.matches[mid], touched)

        log.debug(
            "Built %s stage %r: %d participants, %d groups, %d rounds, %d matches",
            fmt.value,
            name,
            len(participants),
            len(state.groups),
            len(state.rounds),
            len(state.matches),
        )
        return state

    def rebuild(self, state: StageState) -> StageState:
        """Pristine copy of an existing stage (same participants, settings and ids)."""
        return self.build(
            name=state.stage.name,
            format=state.stage.format,
            participants=sorted(state.participants, key=lambda p: p.seed_position),
            settings=state.stage.settings,
            seeding=state.stage.seeding,
            stage_id=state.stage.id,
        )

    # -------------------------
    # Formats
    # -------------------------

    def _single(self, b: _Builder, cfg: StageSettings) -> None:
        participants = b.state.participants
        size = next_power_of_two(len(participants))
        slots = first_round_slots(participants, size, balance_byes=cfg.balance_byes)
        b.winners_tree(b.group(GroupKind.W), slots)

    def _double(self, b: _Builder, cfg: StageSettings) -> Optional[Match]:
        participants = b.state.participants
        size = next_power_of_two(len(participants))
        slots = first_round_slots(participants, size, balance_byes=cfg.balance_byes)

        wg = b.group(GroupKind.W)
        wb = b.winners_tree(wg, slots)
        wb_final = wb[-1][0]

        lb_final: Optional[Match] = None
        if len(wb) >= 2:
            lb_final = b.losers_tree(b.group(GroupKind.L), wb)

        gf = b.group(GroupKind.GF)
        r1 = b.round(gf, 1)
        if lb_final is None:
            # two-player bracket: the winners final loser goes straight to the grand final
            gf1 = b.match(gf, r1, 0, Slot.winner_of(wb_final.id), Slot.loser_of(wb_final.id))
            wb_final.forward_loser = Forward(gf1.id, 2)
        else:
            gf1 = b.match(gf, r1, 0, Slot.winner_of(wb_final.id), Slot.winner_of(lb_final.id))
            lb_final.forward_winner = Forward(gf1.id, 2)
        wb_final.forward_winner = Forward(gf1.id, 1)

        if cfg.grand_final != GrandFinalType.DOUBLE:
            return None

        # Reset match: slot 1 keeps the winners-side finalist (loser of GF1 when
        # the reset is needed), slot 2 the losers-side finalist who won GF1.
        r2 = b.round(gf, 2)
        return b.match(gf, r2, 0, Slot.loser_of(gf1.id), Slot.winner_of(gf1.id))

    def _round_robin(self, b: _Builder, cfg: StageSettings) -> None:
        """
        Circle method: fix the first entry, rotate the rest. An odd field gets
        a phantom entry; whoever meets it sits the round out. Each extra leg
        swaps home/away.
        """
        group = b.group(GroupKind.RR)
        ids: list[Optional[int]] = [p.id for p in sorted(b.state.participants, key=lambda p: p.seed_position)]
        if len(ids) % 2:
            ids.append(None)
        n = len(ids)

        number = 0
        for leg in range(cfg.matches_per_pair):
            rotation = list(ids)
            for _ in range(n - 1):
                number += 1
                rnd = b.round(group, number)
                position = 0
                for i in range(n // 2):
                    a, c = rotation[i], rotation[n - 1 - i]
                    if a is None or c is None:
                        continue
                    if leg % 2:
                        a, c = c, a
                    b.match(group, rnd, position, Slot.seed(a), Slot.seed(c))
                    position += 1
                rotation = [rotation[0], rotation[-1]] + rotation[1:-1]
