from __future__ import annotations

import logging
import random
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import discord

from .assistant import ASK_FALLBACK, MENTION_FALLBACK
from .rest import ApiError

LOGGER = logging.getLogger(__name__)

DICE_SIZES = {
    "d4": 4,
    "d6": 6,
    "d8": 8,
    "d10": 10,
    "d12": 12,
    "d20": 20,
    "d100": 100,
}
INVALID_DICE_MESSAGE = (
    "Invalid dice type! Please use one of the following: "
    "d4, d6, d8, d10, d12, d20, d100."
)


class AssistantLike(Protocol):
    async def reply_for(self, question: str, fallback: str = ...) -> str: ...


class GifSource(Protocol):
    async def roll_gif(self) -> str: ...


@dataclass(frozen=True)
class Command:
    name: str
    argument: str = ""


def _mention_pattern(bot_user_id: int) -> re.Pattern[str]:
    return re.compile(rf"<@!?{bot_user_id}>")


def parse_command(
    content: str, bot_user_id: Optional[int] = None, mentioned: bool = False
) -> Optional[Command]:
    text = content.strip()
    if text == "!ping":
        return Command("ping")
    if text.startswith("!ask "):
        question = text[len("!ask") :].strip()
        return Command("ask", question) if question else None
    if text == "!roll" or text.startswith("!roll "):
        parts = text.split()
        return Command("roll", parts[1].lower() if len(parts) > 1 else "")
    if mentioned and bot_user_id is not None:
        question = _mention_pattern(bot_user_id).sub("", text).strip()
        if question:
            return Command("mention", question)
    return None


class CommandCooldown:
    """Single process-wide cooldown shared by every command."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self.clock = clock
        self._last: Optional[float] = None

    def try_acquire(self) -> bool:
        now = self.clock()
        if self._last is not None and now - self._last < self.seconds:
            return False
        self._last = now
        return True


def roll_die(label: str, rng: random.Random) -> Optional[int]:
    size = DICE_SIZES.get(label)
    if size is None:
        return None
    return rng.randint(1, size)


class CommandRouter:
    def __init__(
        self,
        assistant: AssistantLike,
        gifs: GifSource | None,
        cooldown: CommandCooldown,
        rng: Optional[random.Random] = None,
    ):
        self.assistant = assistant
        self.gifs = gifs
        self.cooldown = cooldown
        self.rng = rng or random.Random()

    async def handle(self, message: Any, bot_user_id: Optional[int]) -> Optional[Command]:
        """Run the command carried by `message`, if any, and return it."""
        if getattr(message.author, "bot", False):
            return None
        mentioned = bot_user_id is not None and any(
            getattr(user, "id", None) == bot_user_id for user in message.mentions
        )
        command = parse_command(message.content or "", bot_user_id, mentioned)
        if command is None:
            return None
        if not self.cooldown.try_acquire():
            LOGGER.debug("Ignoring %s from %s during cooldown", command.name, message.author)
            return None
        LOGGER.info("Command %s from %s", command.name, message.author)

        if command.name == "ping":
            await message.reply("Pong!")
        elif command.name == "ask":
            await message.reply(
                await self.assistant.reply_for(command.argument, ASK_FALLBACK)
            )
        elif command.name == "mention":
            await message.reply(
                await self.assistant.reply_for(command.argument, MENTION_FALLBACK)
            )
        elif command.name == "roll":
            await self._roll(message, command.argument)
        return command

    async def _roll(self, message: Any, label: str):
        result = roll_die(label, self.rng)
        if result is None:
            await message.reply(INVALID_DICE_MESSAGE)
            return
        if self.gifs is not None:
            try:
                gif_url = await self.gifs.roll_gif()
                await message.channel.send(gif_url)
            except (ApiError, discord.HTTPException) as exc:
                LOGGER.warning("Error posting roll GIF: %s", exc)
        LOGGER.debug("Dice roll result for %s: %s", label, result)
        await message.reply(f"You rolled a {label.upper()} and got: **{result}**")
