import logging
from dataclasses import dataclass
from typing import Any, List

from .rest import ApiError, JsonApiClient

LOGGER = logging.getLogger(__name__)

FREE_GAMES_HOST = "free-epic-games.p.rapidapi.com"
FREE_GAMES_URL = f"https://{FREE_GAMES_HOST}/free"
ANNOUNCEMENT_HEADER = "**Free Games on Epic Games**"


@dataclass(frozen=True)
class FreeGame:
    title: str
    url: str


def parse_free_games(payload: Any) -> List[FreeGame]:
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        payload = payload["data"]
    if not isinstance(payload, list):
        raise ApiError(f"Unexpected free games payload: {type(payload).__name__}")
    games: List[FreeGame] = []
    for item in payload:
        if not isinstance(item, dict):
            LOGGER.warning("Dropping malformed free game entry: %r", item)
            continue
        title = str(item.get("title") or "").strip()
        url = str(item.get("url") or "").strip()
        if not title or not url:
            LOGGER.warning("Dropping free game entry without title/url: %r", item)
            continue
        games.append(FreeGame(title=title, url=url))
    return games


def format_free_games(games: List[FreeGame], limit: int = 2000) -> str:
    lines = [ANNOUNCEMENT_HEADER]
    length = len(ANNOUNCEMENT_HEADER)
    for game in games:
        line = f"{game.title} - {game.url}"
        if length + 1 + len(line) > limit:
            break
        lines.append(line)
        length += 1 + len(line)
    return "\n".join(lines)


class FreeGamesClient(JsonApiClient):
    def __init__(self, api_key: str, **kwargs: Any):
        super().__init__(**kwargs)
        self.api_key = api_key

    async def fetch_free_games(self) -> List[FreeGame]:
        payload = await self._request(
            "GET",
            FREE_GAMES_URL,
            headers={
                "x-rapidapi-key": self.api_key,
                "x-rapidapi-host": FREE_GAMES_HOST,
            },
        )
        LOGGER.debug("Raw free games response: %r", payload)
        return parse_free_games(payload)
