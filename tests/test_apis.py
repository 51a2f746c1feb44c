import asyncio

import pytest

from moonbot.assistant import (
    ASK_FALLBACK,
    DISCORD_MESSAGE_LIMIT,
    PERSONA,
    AssistantClient,
    extract_answer,
    truncate_message,
)
from moonbot.freegames import (
    ANNOUNCEMENT_HEADER,
    FreeGame,
    FreeGamesClient,
    format_free_games,
    parse_free_games,
)
from moonbot.gifs import ROLL_GIF_TAGS, GifClient
from moonbot.rest import ApiError


class RecordingMixin:
    def __init__(self, *args, payload=None, error=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.payload = payload
        self.error = error
        self.calls = []

    async def _request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error:
            raise self.error
        return self.payload


class StubAssistant(RecordingMixin, AssistantClient):
    pass


class StubFreeGames(RecordingMixin, FreeGamesClient):
    pass


class StubGifs(RecordingMixin, GifClient):
    pass


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def test_assistant_sends_persona_and_single_user_turn():
    client = StubAssistant("sk-test", payload=completion("  Hello!  "))

    answer = asyncio.run(client.answer("hi there"))

    assert answer == "Hello!"
    method, _url, kwargs = client.calls[0]
    assert method == "POST"
    assert kwargs["headers"] == {"Authorization": "Bearer sk-test"}
    body = kwargs["json"]
    assert body["model"] == "gpt-4o-mini"
    assert body["max_tokens"] == 150
    assert body["messages"] == [
        {"role": "system", "content": PERSONA},
        {"role": "user", "content": "hi there"},
    ]


def test_assistant_reply_is_truncated_to_message_limit():
    client = StubAssistant("sk-test", payload=completion("x" * 5000))

    reply = asyncio.run(client.reply_for("long please"))

    assert len(reply) == DISCORD_MESSAGE_LIMIT


def test_assistant_reply_falls_back_on_failure():
    client = StubAssistant("sk-test", error=ApiError("boom", status=500))

    assert asyncio.run(client.reply_for("anyone?")) == ASK_FALLBACK
    assert asyncio.run(client.reply_for("anyone?", "custom")) == "custom"


def test_extract_answer_rejects_malformed_payloads():
    with pytest.raises(ApiError):
        extract_answer({"choices": []})
    with pytest.raises(ApiError):
        extract_answer({"error": {"message": "quota"}})
    with pytest.raises(ApiError):
        extract_answer(completion("   "))


def test_truncate_message_keeps_short_text():
    assert truncate_message("short") == "short"
    assert truncate_message("abcdef", limit=4) == "abc…"


def test_parse_free_games_drops_malformed_entries():
    payload = [
        {"title": "Celeste", "url": "https://store.example/celeste"},
        {"title": "", "url": "https://store.example/blank"},
        {"url": "https://store.example/untitled"},
        "garbage",
        {"title": "Hades", "url": "https://store.example/hades", "extra": 1},
    ]

    games = parse_free_games(payload)

    assert games == [
        FreeGame("Celeste", "https://store.example/celeste"),
        FreeGame("Hades", "https://store.example/hades"),
    ]


def test_parse_free_games_accepts_wrapped_list():
    games = parse_free_games({"data": [{"title": "A", "url": "https://a"}]})
    assert games == [FreeGame("A", "https://a")]


def test_parse_free_games_rejects_non_list_payload():
    with pytest.raises(ApiError):
        parse_free_games({"message": "You are not subscribed to this API."})


def test_format_free_games_lists_title_and_url():
    text = format_free_games(
        [FreeGame("Celeste", "https://c"), FreeGame("Hades", "https://h")]
    )
    assert text == f"{ANNOUNCEMENT_HEADER}\nCeleste - https://c\nHades - https://h"


def test_format_free_games_respects_limit():
    games = [FreeGame(f"Game {i}", "https://store.example/" + "x" * 50) for i in range(100)]
    assert len(format_free_games(games)) <= 2000


def test_free_games_client_sends_rapidapi_headers():
    client = StubFreeGames("rapid-key", payload=[{"title": "A", "url": "https://a"}])

    games = asyncio.run(client.fetch_free_games())

    assert games == [FreeGame("A", "https://a")]
    _method, url, kwargs = client.calls[0]
    assert url == "https://free-epic-games.p.rapidapi.com/free"
    assert kwargs["headers"]["x-rapidapi-key"] == "rapid-key"
    assert kwargs["headers"]["x-rapidapi-host"] == "free-epic-games.p.rapidapi.com"


def test_gif_client_extracts_original_url():
    payload = {"data": {"images": {"original": {"url": "https://gifs.example/a.gif"}}}}
    client = StubGifs("giphy-key", payload=payload)

    url = asyncio.run(client.roll_gif())

    assert url == "https://gifs.example/a.gif"
    _method, _url, kwargs = client.calls[0]
    assert kwargs["params"]["api_key"] == "giphy-key"
    assert kwargs["params"]["tag"] in ROLL_GIF_TAGS


def test_gif_client_raises_on_malformed_payload():
    client = StubGifs("giphy-key", payload={"data": []})

    with pytest.raises(ApiError):
        asyncio.run(client.random_gif("luck"))
