# renderers/embeds.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import discord

from domain.errors import BracketError, NotFoundError, StateError
from services import notify_service as events
from services.notify_service import Notification


@dataclass(frozen=True)
class EmbedTheme:
    primary: int = 0xB08D57   # antique gold
    success: int = 0x2ECC71
    warning: int = 0xF1C40F
    danger: int = 0xE74C3C
    neutral: int = 0x5865F2   # discord-ish blue


def _name(side: Mapping[str, Any] | None) -> str:
    if not side or side.get("id") is None:
        return "BYE"
    return str(side.get("name") or f"#{side.get('id')}")


def _score(side: Mapping[str, Any] | None) -> str:
    if not side or side.get("score") is None:
        return "-"
    return str(side["score"])


class Embeds:
    """
    Centralized embed styling so every command and announcement looks consistent.
    """

    def __init__(self, *, theme: EmbedTheme | None = None, footer: str = "Bracket Engine") -> None:
        self._theme = theme or EmbedTheme()
        self._footer = footer

    def base(
        self,
        *,
        title: str,
        description: str | None = None,
        color: int | None = None,
        url: str | None = None,
    ) -> discord.Embed:
        e = discord.Embed(
            title=title,
            description=description,
            color=color if color is not None else self._theme.primary,
            url=url,
        )
        e.set_footer(text=self._footer)
        return e

    def info(self, *, title: str, description: str | None = None) -> discord.Embed:
        return self.base(title=title, description=description, color=self._theme.neutral)

    def success(self, *, title: str, description: str | None = None) -> discord.Embed:
        return self.base(title=title, description=description, color=self._theme.success)

    def warning(self, *, title: str, description: str | None = None) -> discord.Embed:
        return self.base(title=title, description=description, color=self._theme.warning)

    def error(self, *, title: str, description: str | None = None) -> discord.Embed:
        return self.base(title=title, description=description, color=self._theme.danger)

    def field_kv(
        self,
        embed: discord.Embed,
        *,
        name: str,
        value: str,
        inline: bool = False,
    ) -> discord.Embed:
        embed.add_field(name=name, value=value, inline=inline)
        return embed

    def small_code(self, text: str, lang: str = "") -> str:
        lang = (lang or "").strip()
        return f"```{lang}\n{text}\n```"

    # -------------------------
    # Bracket errors / events
    # -------------------------

    def for_error(self, err: BracketError) -> discord.Embed:
        if isinstance(err, NotFoundError):
            title = "Not found"
        elif isinstance(err, StateError):
            title = "Not allowed right now"
        else:
            title = "Bracket error"
        return self.error(title=title, description=err.message)

    def for_event(self, event: Notification) -> discord.Embed:
        p = event.payload

        if event.name == events.TOURNAMENT_CREATED:
            e = self.info(title=f"New bracket: {p.get('name')}", description=f"Stage `{p.get('id')}` · {p.get('format')}")
            names = p.get("participants") or []
            listing = "\n".join(f"{i}. {n}" for i, n in enumerate(names[:32], start=1))
            if len(names) > 32:
                listing += f"\n… +{len(names) - 32} more"
            return self.field_kv(e, name=f"Participants ({len(names)})", value=listing or "(none)")

        if event.name == events.MATCH_UPDATED:
            s1, s2 = p.get("slot1Update"), p.get("slot2Update")
            line = f"**{_name(s1)}** {_score(s1)} - {_score(s2)} **{_name(s2)}**"
            winner = s1 if (s1 or {}).get("result") == "win" else s2 if (s2 or {}).get("result") == "win" else None
            e = self.base(title=f"Match {p.get('match') or p.get('matchId')} reported", description=line)
            if winner is not None:
                self.field_kv(e, name="Winner", value=_name(winner), inline=True)
            return e

        if event.name == events.BRACKET_PROGRESSION:
            return self.info(
                title=f"Stage {p.get('stageId')} progress",
                description=(
                    f"Round {p.get('roundId')}: {p.get('completedMatches')}/{p.get('totalMatches')} "
                    f"({p.get('progressPercent')}%)"
                ),
            )

        if event.name == events.TOURNAMENT_COMPLETED:
            w = p.get("winner") or {}
            return self.success(
                title=f"Stage {p.get('stageId')} completed",
                description=f"🏆 Winner: **{w.get('name') or 'N/A'}**",
            )

        if event.name == events.TOURNAMENT_ERROR:
            return self.error(title=f"Stage {p.get('stageId')} error", description=str(p.get("message") or ""))

        return self.info(title=event.name, description=self.small_code(str(p)))
