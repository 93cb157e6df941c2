# domain/graph.py
from __future__ import annotations

from typing import Optional

from domain.enums import MatchStatus, SlotOrigin, StageFormat
from domain.errors import MalformedBracket
from domain.models import Forward, Match, StageState


def refresh(state: StageState, match: Match, touched: set[int]) -> None:
    """
    Re-evaluate one match after one of its slots changed.

    - both slots hold participants -> READY
    - both settled, at most one participant -> BYE, the occupant (if any)
      wins and is forwarded without a report
    - otherwise WAITING
    """
    if match.is_settled:
        return

    s1, s2 = match.slot1, match.slot2
    if not (s1.settled and s2.settled):
        if match.status != MatchStatus.WAITING:
            match.status = MatchStatus.WAITING
            touched.add(match.id)
        return

    if s1.occupied and s2.occupied:
        if match.status != MatchStatus.READY:
            match.status = MatchStatus.READY
            touched.add(match.id)
        return

    match.status = MatchStatus.BYE
    match.winner_slot = 1 if s1.occupied else 2 if s2.occupied else None
    touched.add(match.id)

    if match.forward_winner is not None:
        place(state, match.forward_winner, match.winner_id, touched)
    if match.forward_loser is not None:
        place(state, match.forward_loser, None, touched)


def place(state: StageState, target: Forward, participant_id: Optional[int], touched: set[int]) -> None:
    """Write an outcome into a forward slot and re-evaluate only that target."""
    m = state.matches.get(target.match_id)
    if m is None:
        raise MalformedBracket(
            f"Forward target {target.match_id} does not exist.",
            stage_id=state.stage.id,
            match_id=target.match_id,
        )
    if m.is_settled:
        raise MalformedBracket(
            f"Forward target {state.code(m)} is already settled.",
            stage_id=state.stage.id,
            match_id=m.id,
        )

    slot = m.slot(target.slot)
    if slot.settled:
        raise MalformedBracket(
            f"Slot {target.slot} of {state.code(m)} was written twice.",
            stage_id=state.stage.id,
            match_id=m.id,
        )
    slot.fill(participant_id)
    touched.add(m.id)
    refresh(state, m, touched)


def validate(state: StageState, *, exempt: set[int] | None = None) -> None:
    """
    Structural checks run once at construction time:
      - every forward points at an existing match and slot 1/2
      - every forward lands in a slot whose origin names the source match
      - every winner_of/loser_of slot is fed by exactly that forward
        (matches in `exempt` are fed by the grand-final reset rule instead)
      - the forward graph has no cycles
      - elimination formats end in exactly one terminal match
    """
    exempt = exempt or set()
    sid = state.stage.id
    fed: set[tuple[int, int]] = set()

    for m in state.matches.values():
        for fwd, origin in ((m.forward_winner, SlotOrigin.WINNER_OF), (m.forward_loser, SlotOrigin.LOSER_OF)):
            if fwd is None:
                continue
            target = state.matches.get(fwd.match_id)
            if target is None or fwd.slot not in (1, 2):
                raise MalformedBracket(f"Match {m.id} forwards to a missing slot {fwd}.", stage_id=sid, match_id=m.id)
            slot = target.slot(fwd.slot)
            if slot.origin != origin or slot.source_match_id != m.id:
                raise MalformedBracket(
                    f"Match {m.id} forwards into slot {fwd.slot} of match {target.id} which expects {slot.origin.value}.",
                    stage_id=sid,
                    match_id=m.id,
                )
            key = (target.id, fwd.slot)
            if key in fed:
                raise MalformedBracket(f"Slot {key} is fed twice.", stage_id=sid, match_id=target.id)
            fed.add(key)

    for m in state.matches.values():
        if m.id in exempt:
            continue
        for idx in (1, 2):
            slot = m.slot(idx)
            if slot.origin in (SlotOrigin.WINNER_OF, SlotOrigin.LOSER_OF) and (m.id, idx) not in fed:
                raise MalformedBracket(f"Slot {idx} of match {m.id} is never fed.", stage_id=sid, match_id=m.id)

    # cycle check (iterative DFS, colours: 0 new, 1 on stack, 2 done)
    colour = {mid: 0 for mid in state.matches}
    for start in state.matches:
        if colour[start]:
            continue
        stack: list[tuple[int, int]] = [(start, 0)]
        colour[start] = 1
        while stack:
            mid, i = stack.pop()
            m = state.matches[mid]
            nxt = [f.match_id for f in (m.forward_winner, m.forward_loser) if f is not None]
            if i < len(nxt):
                stack.append((mid, i + 1))
                child = nxt[i]
                if colour[child] == 1:
                    raise MalformedBracket(f"Forward cycle through match {child}.", stage_id=sid, match_id=child)
                if colour[child] == 0:
                    colour[child] = 1
                    stack.append((child, 0))
            else:
                colour[mid] = 2

    if state.stage.format != StageFormat.ROUND_ROBIN:
        terminals = [m.id for m in state.matches.values() if m.forward_winner is None and m.id not in exempt]
        if len(terminals) != 1:
            raise MalformedBracket(f"Expected one terminal match, found {sorted(terminals)}.", stage_id=sid)
