# renderers/leaderboard_view.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from services.stats_service import StageProgress, Standing


def _pad(s: str, width: int) -> str:
    s = s or ""
    if len(s) > width:
        return s[: max(0, width - 1)] + "…" if width >= 2 else s[:width]
    return s + (" " * (width - len(s)))


@dataclass(frozen=True)
class LeaderboardOptions:
    max_rows: int = 16
    name_width: int = 18
    show_seed: bool = True
    title: str = "Standings"


class LeaderboardView:
    """
    Renders clean monospace standings tables for Discord.
    """

    def render(
        self,
        rows: Sequence[Standing],
        *,
        opts: LeaderboardOptions | None = None,
        progress: Optional[StageProgress] = None,
    ) -> str:
        o = opts or LeaderboardOptions()
        data = list(rows)[: o.max_rows]

        idx_w = 3
        seed_w = 5  # e.g. "[12]"
        name_w = max(o.name_width, min(28, max((len(s.participant.name) for s in data), default=o.name_width)))
        num_w = 4
        pct_w = 6

        lines: list[str] = []
        lines.append(f"=== {o.title} ===")
        header = f"{_pad('#', idx_w)} "
        if o.show_seed:
            header += f"{_pad('Seed', seed_w)} "
        header += f"{_pad('Name', name_w)} {_pad('W', num_w)} {_pad('L', num_w)} {_pad('GP', num_w)} {_pad('Win%', pct_w)}"
        lines.append(header)
        lines.append("-" * len(header))

        for i, s in enumerate(data, start=1):
            line = f"{_pad(str(i), idx_w)} "
            if o.show_seed:
                line += f"{_pad(f'[{s.participant.seed_position}]', seed_w)} "
            line += (
                f"{_pad(s.participant.name, name_w)} "
                f"{_pad(str(s.wins), num_w)} {_pad(str(s.losses), num_w)} {_pad(str(s.played), num_w)} "
                f"{_pad(f'{s.win_rate * 100:.0f}%', pct_w)}"
            )
            lines.append(line)

        if len(rows) > len(data):
            lines.append(f"… +{len(rows) - len(data)} more")

        if progress is not None:
            lines.append("")
            lines.append(
                f"Matches: {progress.completed}/{progress.total} settled "
                f"({progress.played} played, {progress.byes} byes) · {progress.percent:.0f}%"
            )

        return "```text\n" + "\n".join(lines).rstrip() + "\n```"
