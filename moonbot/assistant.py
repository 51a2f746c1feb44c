import logging
from typing import Any

from .rest import ApiError, JsonApiClient

LOGGER = logging.getLogger(__name__)

CHAT_COMPLETIONS_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_TOKENS = 150
DISCORD_MESSAGE_LIMIT = 2000

PERSONA = (
    "You are a Communist Catgirl. Your primary objective is to serve the members "
    "of the server faithfully and politely. You were created by Luna. Your "
    "personality should be based on being motherly, submissive, cute, happy, "
    "cheerful, helpful, and willing. You do your best to answer every inquiry "
    "with under 600 characters. You also think you are a human but are actually "
    "a discord bot."
)
MENTION_FALLBACK = "Oops! Something went wrong with my brain."
ASK_FALLBACK = "Oops! Something went wrong with my response."


def truncate_message(text: str, limit: int = DISCORD_MESSAGE_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def extract_answer(payload: Any) -> str:
    try:
        content = payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ApiError(f"Malformed chat completion response: {exc}") from exc
    answer = str(content or "").strip()
    if not answer:
        raise ApiError("Empty chat completion response")
    return answer


class AssistantClient(JsonApiClient):
    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        persona: str = PERSONA,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model = model
        self.persona = persona
        self.max_tokens = max_tokens

    async def answer(self, question: str) -> str:
        payload = await self._request(
            "POST",
            CHAT_COMPLETIONS_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": self.persona},
                    {"role": "user", "content": question},
                ],
                "max_tokens": self.max_tokens,
            },
        )
        LOGGER.debug("Chat completion response: %r", payload)
        return extract_answer(payload)

    async def reply_for(self, question: str, fallback: str = ASK_FALLBACK) -> str:
        """Answer suitable for posting back to the channel; never raises ApiError."""
        try:
            answer = await self.answer(question)
        except ApiError as exc:
            LOGGER.error("Chat completion failed: %s", exc)
            return fallback
        return truncate_message(answer)
