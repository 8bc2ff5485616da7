from __future__ import annotations

import logging

import discord
from aiohttp import web
from discord.ext import commands, tasks
from dotenv import load_dotenv

from .bridge import create_app, start_bridge
from .clock import local_day_key, previous_day_key
from .commands import register_commands
from .config import Config, load_config
from .db import Database
from .engine import TrackerContext
from .models import WORK_MODE, FocusTimerState
from .reporter import Reporter, describe_focus_state

AUTO_REPORT_META_KEY = "last_auto_report_day"


class UsageTrackerBot(commands.Bot):
    def __init__(self, config: Config, db: Database) -> None:
        intents = discord.Intents.none()
        intents.guilds = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.db = db
        self.context = TrackerContext(db=db, tz=config.timezone)
        self.reporter = Reporter(self.context.aggregator)

        self.logger = logging.getLogger("usage-tracker-bot")

        # runtime_ready prevents the report loop from running before channel/permission checks pass.
        self.runtime_ready = False
        self.report_channel: discord.TextChannel | None = None
        self.bridge_runner: web.AppRunner | None = None

    async def setup_hook(self) -> None:
        # The engine and the extension bridge run regardless of Discord readiness.
        await self.context.start()
        self.context.focus_timer.add_listener(self.announce_focus_transition)
        self.bridge_runner = await start_bridge(
            create_app(self.context),
            self.config.bridge_host,
            self.config.bridge_port,
        )

        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))
        self.midnight_report_loop.start()

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")
        if self.runtime_ready:
            return

        if await self._validate_runtime_resources():
            self.runtime_ready = True
            self.logger.info("Runtime checks passed")

    async def _validate_runtime_resources(self) -> bool:
        # Fail fast if guild/channel/permissions are misconfigured.
        guild = self.get_guild(self.config.guild_id)
        if guild is None:
            self.logger.error("Configured guild %s not found", self.config.guild_id)
            await self.close()
            return False

        report = guild.get_channel(self.config.report_channel_id)
        if not isinstance(report, discord.TextChannel):
            self.logger.error("Report channel %s is missing or not a text channel", self.config.report_channel_id)
            await self.close()
            return False

        me = guild.me
        if me is None and self.user is not None:
            me = guild.get_member(self.user.id)

        if me is None:
            self.logger.error("Unable to resolve bot member in guild %s", guild.id)
            await self.close()
            return False

        perms = report.permissions_for(me)
        if not perms.view_channel or not perms.send_messages:
            self.logger.error("Missing view/send permission in report channel %s", report.id)
            await self.close()
            return False

        self.report_channel = report
        return True

    async def announce_focus_transition(self, state: FocusTimerState) -> None:
        if not self.runtime_ready or self.report_channel is None:
            return
        title = "Work session: focus for the next session" if state.mode == WORK_MODE else "Break time: take a short break"
        await self.report_channel.send(
            f"**{title}**\n{describe_focus_state(state)}",
            allowed_mentions=discord.AllowedMentions.none(),
        )

    @tasks.loop(seconds=30)
    async def midnight_report_loop(self) -> None:
        if not self.runtime_ready:
            return

        now = self.context.clock()
        today = local_day_key(now, self.config.timezone)
        target_day = previous_day_key(today)

        # The loop runs every 30s; the meta marker makes the first tick of a new day the only one that reports.
        if self.db.get_meta(AUTO_REPORT_META_KEY) == target_day:
            return

        if self.report_channel is None:
            self.logger.error("Report channel unavailable while trying to post midnight report")
            return

        self.logger.info("Posting daily report for %s", target_day)
        try:
            await self.reporter.post_report(
                self.report_channel,
                target_day,
                self.context.settings.daily_goal_minutes,
            )
        except Exception:  # pragma: no cover - runtime safety
            self.logger.exception("Failed to post daily report")
            return

        self.db.set_meta(AUTO_REPORT_META_KEY, target_day)
        await self.context.aggregator.purge_older_than(self.context.settings.data_retention_days, today)

    @midnight_report_loop.before_loop
    async def before_midnight_report_loop(self) -> None:
        await self.wait_until_ready()

    async def close(self) -> None:
        if self.midnight_report_loop.is_running():
            self.midnight_report_loop.cancel()
        if self.bridge_runner is not None:
            await self.bridge_runner.cleanup()
            self.bridge_runner = None
        await self.context.close()
        self.db.close()
        await super().close()


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main() -> None:
    load_dotenv()
    configure_logging()

    config = load_config()
    db = Database(config.db_path)
    db.initialize()

    bot = UsageTrackerBot(config=config, db=db)
    bot.run(config.discord_token)


if __name__ == "__main__":
    main()
