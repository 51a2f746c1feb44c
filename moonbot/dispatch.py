from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Tuple

LOGGER = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class Event:
    kind: str
    args: Tuple[Any, ...] = ()


class EventDispatcher:
    """Queue of inbound gateway events drained by a single worker task."""

    def __init__(self):
        self.queue: asyncio.Queue[Event] = asyncio.Queue()
        self.handlers: Dict[str, Handler] = {}

    def register(self, kind: str, handler: Handler) -> None:
        self.handlers[kind] = handler

    def submit(self, kind: str, *args: Any) -> None:
        self.queue.put_nowait(Event(kind, args))

    async def dispatch(self, event: Event) -> bool:
        handler = self.handlers.get(event.kind)
        if handler is None:
            LOGGER.debug("No handler registered for %s", event.kind)
            return False
        try:
            await handler(*event.args)
        except Exception as exc:
            LOGGER.exception("Handler for %s failed: %s", event.kind, exc)
            return False
        return True

    async def run(self):
        while True:
            event = await self.queue.get()
            try:
                await self.dispatch(event)
            finally:
                self.queue.task_done()
