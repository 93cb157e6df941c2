# cogs/brackets_cog.py
from __future__ import annotations

import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from domain.enums import SeedingStrategy
from domain.errors import AliasNotFound, BracketError, InvalidResult
from domain.models import MatchUpdate
from renderers.bracket_view import BracketView
from renderers.embeds import Embeds
from renderers.leaderboard_view import LeaderboardOptions, LeaderboardView
from services.bracket_service import BracketService

log = logging.getLogger(__name__)


def split_participants(raw: str) -> list[str]:
    """Participants are typed as one comma (or newline) separated list."""
    parts = raw.replace("\n", ",").split(",")
    return [p.strip() for p in parts if p.strip()]


class BracketsCog(commands.Cog):
    bracket = app_commands.Group(name="bracket", description="Create and run brackets.")

    def __init__(
        self,
        bot: commands.Bot,
        *,
        bracket_service: BracketService,
        embeds: Embeds,
        bracket_view: BracketView,
        leaderboard_view: LeaderboardView,
        default_seeding: str = "natural",
    ) -> None:
        self.bot = bot
        self.brackets = bracket_service
        self.embeds = embeds
        self.bracket_view = bracket_view
        self.leaderboard_view = leaderboard_view
        self.default_seeding = default_seeding

    # -----------------------------
    # Helpers
    # -----------------------------

    async def resolve_stage(self, ref: str) -> int:
        """A stage is named by its external id, or by its numeric id."""
        ref = (ref or "").strip()
        try:
            return await self.brackets.resolve_stage(ref)
        except AliasNotFound:
            if ref.isdigit():
                return int(ref)
            raise

    async def _can_manage(self, interaction: discord.Interaction) -> bool:
        if not interaction.guild:
            return False
        if isinstance(interaction.user, discord.Member):
            return interaction.user.guild_permissions.manage_guild or interaction.user.guild_permissions.manage_channels
        return False

    async def _fail(self, interaction: discord.Interaction, err: BracketError) -> None:
        log.info("Command %s rejected: %s", getattr(interaction.command, "qualified_name", "?"), err.context())
        await interaction.followup.send(embed=self.embeds.for_error(err), ephemeral=True)

    # -----------------------------
    # Commands
    # -----------------------------

    @bracket.command(name="create", description="Create a bracket from a list of participants.")
    @app_commands.describe(
        name="Bracket name",
        format="Bracket format",
        participants="Comma separated participant names, in seed order",
        seeding="Seeding strategy applied to the list",
        grand_final="Double elimination only: play a reset if the losers-side finalist wins",
        external_id="Optional short name to refer to this bracket in other commands",
    )
    @app_commands.choices(
        format=[
            app_commands.Choice(name="Single Elim", value="single_elimination"),
            app_commands.Choice(name="Double Elim", value="double_elimination"),
            app_commands.Choice(name="Round Robin", value="round_robin"),
        ],
        seeding=[app_commands.Choice(name=s.value, value=s.value) for s in SeedingStrategy],
        grand_final=[
            app_commands.Choice(name="Reset if needed", value="double"),
            app_commands.Choice(name="Single match", value="simple"),
        ],
    )
    async def create(
        self,
        interaction: discord.Interaction,
        name: str,
        format: app_commands.Choice[str],
        participants: str,
        seeding: Optional[app_commands.Choice[str]] = None,
        grand_final: Optional[app_commands.Choice[str]] = None,
        external_id: Optional[str] = None,
    ) -> None:
        await interaction.response.defer(ephemeral=False)

        settings = {"grand_final": grand_final.value} if grand_final else None
        try:
            view = await self.brackets.create_bracket(
                name[:128],
                format.value,
                split_participants(participants),
                seeding=seeding.value if seeding else self.default_seeding,
                settings=settings,
                external_id=external_id,
            )
        except BracketError as err:
            await self._fail(interaction, err)
            return

        ref = view.external_id or str(view.id)
        e = self.embeds.success(
            title="Bracket created",
            description=(
                f"**ID:** `{view.id}`"
                + (f" (`{view.external_id}`)" if view.external_id else "")
                + f"\n**Name:** {view.state.stage.name}\n**Format:** {format.value}"
                + f"\n**Participants:** {view.state.stage.participant_count}"
                + f"\n**Matches:** {len(view.state.matches)}"
            ),
        )
        self.embeds.field_kv(e, name="Next", value=f"`/bracket show stage:{ref}`")
        await interaction.followup.send(embed=e)

    @bracket.command(name="show", description="Show a bracket.")
    async def show(self, interaction: discord.Interaction, stage: str) -> None:
        await interaction.response.defer(ephemeral=False)
        try:
            stage_id = await self.resolve_stage(stage)
            view = await self.brackets.get_stage(stage_id)
        except BracketError as err:
            await self._fail(interaction, err)
            return

        text = self.bracket_view.render(view.state)
        e = self.embeds.info(title=f"Bracket {view.id}: {view.state.stage.name}", description=text)
        self.embeds.field_kv(
            e,
            name="How to report",
            value=f"`/bracket report stage:{view.external_id or view.id} match:W1-01 score1:2 score2:1`",
        )
        await interaction.followup.send(embed=e)

    @bracket.command(name="report", description="Report a match result and advance the bracket.")
    @app_commands.describe(
        stage="Bracket id or short name",
        match="Match code shown in the bracket (e.g. W1-02, L3-01, GF-01, RR2-01) or match id",
        score1="Score of the first (top) participant",
        score2="Score of the second (bottom) participant",
        winner="Winner slot; needed when scores are tied or not given",
    )
    @app_commands.choices(
        winner=[
            app_commands.Choice(name="Top (slot 1)", value=1),
            app_commands.Choice(name="Bottom (slot 2)", value=2),
        ]
    )
    async def report(
        self,
        interaction: discord.Interaction,
        stage: str,
        match: str,
        score1: Optional[app_commands.Range[int, 0, 999]] = None,
        score2: Optional[app_commands.Range[int, 0, 999]] = None,
        winner: Optional[app_commands.Choice[int]] = None,
    ) -> None:
        await interaction.response.defer(ephemeral=False)
        try:
            stage_id = await self.resolve_stage(stage)
            state, m = await self.brackets.get_match(stage_id, match)
            if winner is not None:
                update = MatchUpdate.winner(winner.value, score1=score1, score2=score2)
            elif score1 is not None and score2 is not None:
                update = MatchUpdate.scores(score1, score2)
            else:
                raise InvalidResult("Give both scores or pick a winner.", stage_id=stage_id, match_id=m.id)
            done = await self.brackets.report_result(stage_id, m.id, update)
        except BracketError as err:
            await self._fail(interaction, err)
            return

        winner_name = state.participant_name(done.winner_id)
        score = f" ({done.score1}-{done.score2})" if done.score1 is not None and done.score2 is not None else ""
        e = self.embeds.success(
            title="Result recorded",
            description=f"`{state.code(m)}` won by **{winner_name}**{score}.",
        )
        await interaction.followup.send(embed=e)

    @bracket.command(name="reset", description="Clear every result of a bracket.")
    async def reset(self, interaction: discord.Interaction, stage: str) -> None:
        if not await self._can_manage(interaction):
            await interaction.response.send_message("Missing permission to manage brackets here.", ephemeral=True)
            return
        await interaction.response.defer(ephemeral=True)
        try:
            stage_id = await self.resolve_stage(stage)
            await self.brackets.reset_stage(stage_id)
        except BracketError as err:
            await self._fail(interaction, err)
            return

        e = self.embeds.warning(title="Bracket reset", description=f"All results of bracket `{stage_id}` were cleared.")
        await interaction.followup.send(embed=e, ephemeral=True)

    @bracket.command(name="standings", description="Show wins and losses for a bracket.")
    async def standings(self, interaction: discord.Interaction, stage: str) -> None:
        await interaction.response.defer(ephemeral=False)
        try:
            stage_id = await self.resolve_stage(stage)
            view = await self.brackets.get_stage(stage_id)
            rows = await self.brackets.compute_standings(stage_id)
            progress = await self.brackets.compute_progress(stage_id)
        except BracketError as err:
            await self._fail(interaction, err)
            return

        text = self.leaderboard_view.render(
            rows,
            opts=LeaderboardOptions(title=f"{view.state.stage.name} standings"),
            progress=progress,
        )
        await interaction.followup.send(embed=self.embeds.info(title=f"Standings: bracket {stage_id}", description=text))


async def setup(
    bot: commands.Bot,
    *,
    bracket_service: BracketService,
    embeds: Embeds,
    bracket_view: BracketView,
    leaderboard_view: LeaderboardView,
    default_seeding: str = "natural",
) -> None:
    await bot.add_cog(
        BracketsCog(
            bot,
            bracket_service=bracket_service,
            embeds=embeds,
            bracket_view=bracket_view,
            leaderboard_view=leaderboard_view,
            default_seeding=default_seeding,
        )
    )
