from __future__ import annotations

import asyncio
import logging
import signal
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

import discord
import discord.abc
from discord.ext import commands

from .assistant import AssistantClient
from .commands import CommandCooldown, CommandRouter
from .config import BotConfig, ConfigError, load_config
from .dispatch import EventDispatcher
from .freegames import FreeGamesClient, format_free_games
from .gifs import GifClient
from .invites import InviteAttributionCache
from .notifications import (
    CONNECT_NOTICE,
    DISCONNECT_NOTICE,
    FREE_GAMES,
    STAFF_ALERTS,
    WELCOME,
    NotificationChannels,
    ban_message,
    goodbye_message,
    kick_message,
    role_change_message,
    role_diff,
    unban_message,
    welcome_message,
)
from .rest import ApiError
from .schedule import next_daily_run, seconds_until

# Default to INFO until the configured level is applied at startup
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s"
)
LOGGER = logging.getLogger(__name__)

AUDIT_LOG_WINDOW = timedelta(seconds=30)


class GuildInviteSource:
    def __init__(self, bot: commands.Bot):
        self.bot = bot

    async def fetch_invites(self, community_id: int) -> Sequence[Any]:
        guild = self.bot.get_guild(community_id)
        if guild is None:
            raise LookupError(f"Guild {community_id} is not available")
        return await guild.invites()


async def find_audit_executor(
    guild: Any, action: Any, target_id: int, window: timedelta = AUDIT_LOG_WINDOW
) -> Optional[str]:
    """Return the tag of whoever recently performed `action` on `target_id`."""
    cutoff = datetime.now(timezone.utc) - window
    try:
        async for entry in guild.audit_logs(limit=5, action=action):
            target = getattr(entry, "target", None)
            if target is None or getattr(target, "id", None) != target_id:
                continue
            if entry.created_at < cutoff:
                continue
            return str(entry.user) if entry.user else None
    except discord.Forbidden:
        LOGGER.warning("Missing audit log permission in guild %s", guild.id)
    except discord.HTTPException as exc:
        LOGGER.warning("Audit log lookup failed in guild %s: %s", guild.id, exc)
    return None


class MoonBot(commands.Bot):
    def __init__(self, config: BotConfig):
        intents = discord.Intents.default()
        intents.members = True
        intents.guilds = True
        intents.message_content = True
        super().__init__(command_prefix="!", intents=intents)
        self.config = config
        self.channels = NotificationChannels(
            welcome=config.welcome_channel_id,
            staff_alerts=config.staff_channel_id,
            free_games=config.game_channel_id,
        )
        self.invite_cache = InviteAttributionCache(
            GuildInviteSource(self),
            refresh_timeout=config.http_timeout_seconds,
            restrict_to_joining_member=config.invite_match_self_only,
        )
        self.assistant = AssistantClient(
            config.openai_api_key,
            model=config.openai_model,
            timeout=config.http_timeout_seconds,
        )
        self.free_games = FreeGamesClient(
            config.epic_games_api_key, timeout=config.http_timeout_seconds
        )
        self.gifs = (
            GifClient(config.giphy_api_key, timeout=config.http_timeout_seconds)
            if config.giphy_api_key
            else None
        )
        self.router = CommandRouter(
            self.assistant,
            self.gifs,
            CommandCooldown(config.command_cooldown_seconds),
        )
        self.event_dispatcher = EventDispatcher()
        self.event_dispatcher.register("member_join", self.handle_member_join)
        self.event_dispatcher.register("member_remove", self.handle_member_remove)
        self.event_dispatcher.register("member_update", self.handle_member_update)
        self.event_dispatcher.register("member_ban", self.handle_member_ban)
        self.event_dispatcher.register("member_unban", self.handle_member_unban)
        self.event_dispatcher.register("message", self.handle_message)
        self.event_dispatcher.register("ready", self.handle_ready)
        self.event_dispatcher.register("disconnect", self.handle_disconnect)
        self.dispatcher_task: asyncio.Task[None] | None = None
        self.invite_refresh_task: asyncio.Task[None] | None = None
        self.free_games_task: asyncio.Task[None] | None = None
        self.shutdown_task: asyncio.Task[None] | None = None

    async def close(self) -> None:
        LOGGER.info("MoonBot is shutting down...")
        tasks = [
            task
            for task in (
                self.dispatcher_task,
                self.invite_refresh_task,
                self.free_games_task,
            )
            if task
        ]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                LOGGER.exception("Background task %s had failed: %s", task.get_name(), exc)
        await super().close()
        await self.assistant.close()
        await self.free_games.close()
        if self.gifs:
            await self.gifs.close()

    def request_shutdown(self) -> asyncio.Task[None]:
        if self.shutdown_task is None:
            self.shutdown_task = asyncio.create_task(self.close())
        return self.shutdown_task

    async def setup_hook(self) -> None:
        await self._start_workers()

    async def _start_workers(self):
        if self.dispatcher_task:
            return
        self.dispatcher_task = self.loop.create_task(self.event_dispatcher.run())
        self.invite_refresh_task = self.loop.create_task(self._invite_refresh_loop())
        self.free_games_task = self.loop.create_task(self._free_games_loop())
        LOGGER.info(
            "Scheduled daily free games announcement at %02d:00 %s",
            self.config.free_games_hour,
            self.config.free_games_timezone,
        )

    # Gateway callbacks only enqueue; handlers run on the dispatcher task.

    async def on_ready(self):
        self.event_dispatcher.submit("ready")

    async def on_disconnect(self):
        self.event_dispatcher.submit("disconnect")

    async def on_member_join(self, member: discord.Member):
        self.event_dispatcher.submit("member_join", member)

    async def on_member_remove(self, member: discord.Member):
        self.event_dispatcher.submit("member_remove", member)

    async def on_member_update(self, before: discord.Member, after: discord.Member):
        self.event_dispatcher.submit("member_update", before, after)

    async def on_member_ban(self, guild: discord.Guild, user: discord.abc.User):
        self.event_dispatcher.submit("member_ban", guild, user)

    async def on_member_unban(self, guild: discord.Guild, user: discord.abc.User):
        self.event_dispatcher.submit("member_unban", guild, user)

    async def on_message(self, message: discord.Message):
        self.event_dispatcher.submit("message", message)

    async def _invite_refresh_loop(self):
        await self.wait_until_ready()
        interval = self.config.invite_refresh_minutes * 60
        while not self.is_closed():
            await asyncio.sleep(interval)
            try:
                guild_ids = [guild.id for guild in self.guilds]
                refreshed = await self.invite_cache.refresh_all(guild_ids)
                LOGGER.debug(
                    "Invite refresh finished: %s/%s guilds", refreshed, len(guild_ids)
                )
            except Exception as exc:
                LOGGER.exception("Invite refresh pass failed: %s", exc)

    async def _free_games_loop(self):
        await self.wait_until_ready()
        hour = self.config.free_games_hour
        tz_name = self.config.free_games_timezone
        next_run = next_daily_run(hour, tz_name)
        while not self.is_closed():
            await asyncio.sleep(seconds_until(next_run))
            try:
                await self.post_free_games()
            except Exception as exc:
                LOGGER.exception("Free games announcement failed: %s", exc)
            # Step from the previous target so an early wake-up cannot post twice.
            next_run = next_daily_run(hour, tz_name, after=next_run)

    async def notify(
        self, purpose: str, content: str, embed: discord.Embed | None = None
    ) -> bool:
        channel_id = self.channels.channel_id(purpose)
        channel = self.get_channel(channel_id) if channel_id else None
        if channel is None:
            LOGGER.warning("Channel for %s (%s) not found; skipping", purpose, channel_id)
            return False
        try:
            if embed is not None:
                await channel.send(content=content, embed=embed)
            else:
                await channel.send(content)
        except discord.HTTPException as exc:
            LOGGER.error("Failed sending %s message: %s", purpose, exc)
            return False
        return True

    async def post_free_games(self) -> bool:
        try:
            games = await self.free_games.fetch_free_games()
        except ApiError as exc:
            LOGGER.error("Error fetching free games: %s", exc)
            return False
        if not games:
            LOGGER.info("Free games feed returned no entries")
            return False
        return await self.notify(FREE_GAMES, format_free_games(games))

    async def handle_ready(self):
        LOGGER.info("Bot ready as %s", self.user)
        for guild in self.guilds:
            self.invite_cache.track(guild.id)
        await self.notify(STAFF_ALERTS, CONNECT_NOTICE)

    async def handle_disconnect(self):
        LOGGER.warning("MoonBot has disconnected from the gateway")
        if await self.notify(STAFF_ALERTS, DISCONNECT_NOTICE):
            LOGGER.info("Disconnect message sent to staff channel.")

    async def handle_message(self, message: Any):
        bot_user_id = self.user.id if self.user else None
        await self.router.handle(message, bot_user_id)

    async def handle_member_join(self, member: Any):
        invited_by = await self.invite_cache.attribute(member.guild.id, member)
        content = welcome_message(member, invited_by)
        embed = discord.Embed()
        embed.set_image(url=member.display_avatar.url)
        if await self.notify(WELCOME, content, embed=embed):
            LOGGER.info(
                "Welcome message sent for %s in guild %s (invited by %s)",
                member,
                member.guild.id,
                invited_by,
            )

    async def handle_member_remove(self, member: Any):
        guild = member.guild
        LOGGER.debug("User %s is leaving the guild: %s", member, guild.name)
        await self.notify(WELCOME, goodbye_message(member))
        kicked_by = await find_audit_executor(
            guild, discord.AuditLogAction.kick, member.id
        )
        if kicked_by is None:
            return
        if await self.notify(STAFF_ALERTS, kick_message(member, kicked_by)):
            LOGGER.info("User %s kicked by %s.", member, kicked_by)

    async def handle_member_update(self, before: Any, after: Any):
        added, removed = role_diff(before.roles, after.roles)
        if not added and not removed:
            return
        updated_by = (
            await find_audit_executor(
                after.guild, discord.AuditLogAction.member_role_update, after.id
            )
            or "Unknown"
        )
        content = role_change_message(after, updated_by, added, removed)
        if content and await self.notify(STAFF_ALERTS, content):
            LOGGER.info("User %s roles updated by %s.", after, updated_by)

    async def handle_member_ban(self, guild: Any, user: Any):
        banned_by = (
            await find_audit_executor(guild, discord.AuditLogAction.ban, user.id)
            or "Unknown"
        )
        if await self.notify(STAFF_ALERTS, ban_message(user, banned_by)):
            LOGGER.info("User %s banned by %s.", user, banned_by)

    async def handle_member_unban(self, guild: Any, user: Any):
        if await self.notify(STAFF_ALERTS, unban_message(user)):
            LOGGER.info("User %s unbanned.", user)


def configure_logging(config: BotConfig):
    root = logging.getLogger()
    root.setLevel(config.log_level)
    LOGGER.setLevel(config.log_level)
    if config.log_file:
        handler = logging.FileHandler(config.log_file, encoding="utf-8")
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        root.addHandler(handler)


async def main(bot_config: BotConfig):
    bot = MoonBot(bot_config)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, bot.request_shutdown)
        except NotImplementedError:
            LOGGER.debug("Signal handler for %s unsupported on this platform", sig)
    async with bot:
        await bot.start(bot_config.token)


def run():
    try:
        bot_config = load_config()
    except ConfigError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        raise SystemExit(1)
    configure_logging(bot_config)
    asyncio.run(main(bot_config))


if __name__ == "__main__":
    run()
