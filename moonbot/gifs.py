import logging
import random
from typing import Any, Optional

from .rest import ApiError, JsonApiClient

LOGGER = logging.getLogger(__name__)

GIPHY_RANDOM_URL = "https://api.giphy.com/v1/gifs/random"
ROLL_GIF_TAGS = ["nervous", "rolling", "sweating", "thinking", "luck", "drumroll"]


class GifClient(JsonApiClient):
    def __init__(self, api_key: str, rng: Optional[random.Random] = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.rng = rng or random.Random()

    async def random_gif(self, tag: str) -> str:
        payload = await self._request(
            "GET", GIPHY_RANDOM_URL, params={"tag": tag, "api_key": self.api_key}
        )
        try:
            return str(payload["data"]["images"]["original"]["url"])
        except (KeyError, TypeError) as exc:
            raise ApiError(f"Malformed GIF response for tag {tag}: {exc}") from exc

    async def roll_gif(self) -> str:
        tag = self.rng.choice(ROLL_GIF_TAGS)
        LOGGER.debug("Fetching GIF for category: %s", tag)
        return await self.random_gif(tag)
