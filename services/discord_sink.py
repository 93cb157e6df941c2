# services/discord_sink.py
from __future__ import annotations

import logging
from typing import Iterable, Optional

import discord

from renderers.embeds import Embeds
from services.notify_service import ALL_EVENTS, Notification

log = logging.getLogger(__name__)


class DiscordEventSink:
    """
    Posts bracket events as embeds in one announce channel.

    Delivery problems (missing channel, no permission) raise; the Notifier
    logs them and the bracket operation that produced the event is not
    affected.
    """

    def __init__(
        self,
        bot: discord.Client,
        *,
        channel_id: int,
        embeds: Embeds | None = None,
        events: Optional[Iterable[str]] = None,
    ) -> None:
        self._bot = bot
        self._channel_id = int(channel_id)
        self._embeds = embeds or Embeds()
        self._events = frozenset(events) if events is not None else frozenset(ALL_EVENTS)
        self._channel: Optional[discord.abc.Messageable] = None

    async def _resolve_channel(self) -> discord.abc.Messageable:
        if self._channel is not None:
            return self._channel
        ch = self._bot.get_channel(self._channel_id)
        if ch is None:
            ch = await self._bot.fetch_channel(self._channel_id)
        if not hasattr(ch, "send"):
            raise RuntimeError(f"Announce channel {self._channel_id} cannot receive messages.")
        self._channel = ch
        return ch

    async def publish(self, event: Notification) -> None:
        if event.name not in self._events:
            return
        channel = await self._resolve_channel()
        await channel.send(embed=self._embeds.for_event(event))
        log.debug("Announced %s for stage %s in channel %s", event.name, event.stage_id, self._channel_id)
