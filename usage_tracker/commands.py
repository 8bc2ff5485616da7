from __future__ import annotations

from typing import TYPE_CHECKING, Literal

import discord
from discord import app_commands

from .cooldown import remaining_cooldown_ms
from .reporter import build_rows, describe_focus_state, format_duration

if TYPE_CHECKING:
    from .main import UsageTrackerBot

MANUAL_REPORT_META_KEY = "last_manual_report_at_ms"
TOP_SITES = 10


def register_commands(bot: UsageTrackerBot) -> None:
    """Register all slash commands on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)

    @bot.tree.command(name="today", description="Show today's browsing totals so far", guild=guild_scope)
    async def today(interaction: discord.Interaction) -> None:
        day_local = bot.context.aggregator.today_key()
        rows = build_rows(await bot.context.aggregator.get_daily_stats(day_local))

        if not rows:
            await interaction.response.send_message(f"No tracked activity for {day_local}.", ephemeral=True)
            return

        lines = [f"Today's totals ({day_local}):"]
        lines.extend(f"- {row.domain}: `{format_duration(row.total_time)}`" for row in rows[:TOP_SITES])
        await interaction.response.send_message("\n".join(lines), ephemeral=True)

    @bot.tree.command(name="stats", description="Show all-time browsing totals", guild=guild_scope)
    async def stats(interaction: discord.Interaction) -> None:
        aggregate = await bot.context.aggregator.get_statistics()
        top = sorted(aggregate.domains.items(), key=lambda item: (-item[1].total_time, item[0]))[:TOP_SITES]

        lines = [
            f"All-time: `{format_duration(aggregate.total_time)}` over {aggregate.total_visits} visits",
        ]
        lines.extend(f"- {domain}: `{format_duration(totals.total_time)}`" for domain, totals in top)
        await interaction.response.send_message("\n".join(lines), ephemeral=True)

    @bot.tree.command(name="report-now", description="Post today's report so far", guild=guild_scope)
    async def report_now(interaction: discord.Interaction) -> None:
        now = bot.context.clock()
        cooldown_left = remaining_cooldown_ms(
            bot.db.get_meta(MANUAL_REPORT_META_KEY),
            bot.config.report_now_cooldown_seconds,
            now,
        )
        if cooldown_left > 0:
            await interaction.response.send_message(
                f"Global cooldown active. Try again in `{format_duration(cooldown_left)}`.",
                ephemeral=True,
            )
            return

        if bot.report_channel is None:
            await interaction.response.send_message("Report channel is not available.", ephemeral=True)
            return

        day_local = bot.context.aggregator.today_key()
        try:
            await bot.reporter.post_report(bot.report_channel, day_local, bot.context.settings.daily_goal_minutes)
        except discord.DiscordException as exc:
            bot.logger.exception("/report-now failed")
            await interaction.response.send_message(f"Failed to send report: `{exc}`", ephemeral=True)
            return

        bot.db.set_meta(MANUAL_REPORT_META_KEY, str(now))
        await interaction.response.send_message(
            f"Posted day-so-far report for `{day_local}` in <#{bot.config.report_channel_id}>.",
            ephemeral=True,
        )

    @bot.tree.command(name="tracking", description="Turn browser time tracking on or off", guild=guild_scope)
    @app_commands.describe(enabled="Whether tab time should be recorded")
    async def tracking(interaction: discord.Interaction, enabled: bool) -> None:
        await bot.context.toggle_tracking(enabled)
        await interaction.response.send_message(
            f"Tracking is now {'on' if enabled else 'off'}.",
            ephemeral=True,
        )

    @bot.tree.command(name="focus", description="Control the focus timer", guild=guild_scope)
    @app_commands.describe(action="What to do with the timer")
    async def focus(
        interaction: discord.Interaction,
        action: Literal["status", "start", "pause", "reset"] = "status",
    ) -> None:
        timer = bot.context.focus_timer
        if action == "start":
            state = await timer.start()
        elif action == "pause":
            state = await timer.pause()
        elif action == "reset":
            state = await timer.reset()
        else:
            state = await timer.get()
        await interaction.response.send_message(describe_focus_state(state), ephemeral=True)
