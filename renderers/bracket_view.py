# renderers/bracket_view.py
from __future__ import annotations

from typing import Optional

from domain.enums import GroupKind, MatchStatus
from domain.models import Match, Slot, StageState

_SECTION_TITLES = {
    GroupKind.W: "-- WINNERS --",
    GroupKind.L: "-- LOSERS --",
    GroupKind.GF: "-- GRAND FINALS --",
    GroupKind.RR: "-- ROUND ROBIN --",
}


def _pad(s: str, width: int) -> str:
    s = s or ""
    if len(s) > width:
        return s[: max(0, width - 1)] + "…" if width >= 2 else s[:width]
    return s + (" " * (width - len(s)))


def _status_mark(state: StageState, m: Match) -> str:
    if m.status == MatchStatus.COMPLETED:
        score = f" {m.score1}-{m.score2}" if m.score1 is not None and m.score2 is not None else ""
        return f"✅ W:{state.participant_name(m.winner_id)}{score}"
    if m.status == MatchStatus.BYE:
        return "⏭" if m.winner_id is None else f"⏭ {state.participant_name(m.winner_id)}"
    if m.status == MatchStatus.READY:
        return "⏳"
    return "•"


class BracketView:
    """
    Text bracket renderer for Discord (monospace).

    One section per group (winners, losers, grand finals or the round-robin
    pool), matches listed by round with their codes so they can be reported.
    """

    def __init__(self, *, name_width: int = 20) -> None:
        self._name_width = int(name_width)

    def _slot_label(self, state: StageState, slot: Slot) -> str:
        if slot.participant_id is not None:
            p = state.participant(slot.participant_id)
            name = f"[{p.seed_position}] {p.name}" if p else f"#{slot.participant_id}"
        elif slot.settled:
            name = "BYE"
        else:
            name = "TBD"
        return _pad(name, self._name_width)

    def render(
        self,
        state: StageState,
        *,
        title: Optional[str] = None,
        include_losers: bool = True,
        include_grand_finals: bool = True,
        max_lines: int = 55,
    ) -> str:
        lines: list[str] = []
        lines.append(f"=== {title or state.stage.name} ({state.stage.status.value}) ===")
        lines.append("")

        for g in sorted(state.groups, key=lambda g: g.number):
            if g.kind == GroupKind.L and not include_losers:
                continue
            if g.kind == GroupKind.GF and not include_grand_finals:
                continue
            lines.append(_SECTION_TITLES[g.kind])
            lines.extend(self._render_group(state, g.id))
            lines.append("")

        # Trim if too long for Discord messages (keep end because finals matter)
        if len(lines) > max_lines:
            head = lines[:10]
            tail = lines[-(max_lines - 12) :]
            lines = head + ["...", ""] + tail

        return "```text\n" + "\n".join(lines).rstrip() + "\n```"

    def _render_group(self, state: StageState, group_id: int) -> list[str]:
        out: list[str] = []
        is_gf = state.group(group_id).kind == GroupKind.GF
        for r in state.rounds_of(group_id):
            # an unused grand-final reset has nobody in it
            ms = [
                m for m in state.round_matches(r.id)
                if not (is_gf and m.status == MatchStatus.BYE and not (m.slot1.occupied or m.slot2.occupied))
            ]
            if not ms:
                continue
            out.append(f"Round {r.number}:")
            for m in ms:
                left = self._slot_label(state, m.slot1)
                right = self._slot_label(state, m.slot2)
                out.append(f"  {state.code(m)}  {left} vs {right}  {_status_mark(state, m)}")
        return out or ["(none)"]
