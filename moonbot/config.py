import os
from dataclasses import dataclass
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from dotenv import load_dotenv

CONFIG_ENV_KEY = "CONFIG_PATH"
DEFAULT_CONFIG_PATH = "config.yml"

REQUIRED_KEYS = (
    "DISCORD_TOKEN",
    "OPENAI_API_KEY",
    "EPIC_GAMES_API_KEY",
    "WELCOME_CHANNEL_ID",
    "STAFF_CHANNEL_ID",
    "GAME_CHANNEL_ID",
)
VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class ConfigError(ValueError):
    pass


@dataclass
class BotConfig:
    token: str
    openai_api_key: str
    epic_games_api_key: str
    welcome_channel_id: int
    staff_channel_id: int
    game_channel_id: int
    giphy_api_key: str | None = None
    log_level: str = "INFO"
    log_file: str | None = "bot.log"
    openai_model: str = "gpt-4o-mini"
    command_cooldown_seconds: float = 5.0
    invite_refresh_minutes: int = 10
    free_games_timezone: str = "America/New_York"
    free_games_hour: int = 0
    http_timeout_seconds: float = 10.0
    invite_match_self_only: bool = False


def _read_yaml(path: str) -> dict[str, Any]:
    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    # YAML keys are accepted in lower case and mapped onto the env names.
    return {str(key).upper(): value for key, value in data.items()}


def _as_int(values: Mapping[str, Any], key: str, default: int | None = None) -> int:
    raw = values.get(key)
    if raw is None or str(raw).strip() == "":
        if default is None:
            raise ConfigError(f"Config missing '{key}'")
        return default
    try:
        return int(str(raw).strip())
    except ValueError as exc:
        raise ConfigError(f"'{key}' must be an integer, got {raw!r}") from exc


def _as_float(values: Mapping[str, Any], key: str, default: float) -> float:
    raw = values.get(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = float(str(raw).strip())
    except ValueError as exc:
        raise ConfigError(f"'{key}' must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"'{key}' must be positive")
    return value


def _as_bool(values: Mapping[str, Any], key: str) -> bool:
    raw = values.get(key)
    if isinstance(raw, bool):
        return raw
    return str(raw or "").strip().lower() in {"1", "true", "yes", "on"}


def _optional_str(values: Mapping[str, Any], key: str, default: str | None) -> str | None:
    raw = values.get(key)
    if raw is None:
        return default
    text = str(raw).strip()
    return text or None


def load_config(path: str | None = None, env: Mapping[str, str] | None = None) -> BotConfig:
    """Build the bot configuration from a YAML file, `.env` and the environment.

    Environment variables win over `.env`, which wins over the YAML file.
    Raises `ConfigError` when a required value is missing or malformed.
    """
    if env is None:
        load_dotenv()
        env = os.environ
    config_path = path or env.get(CONFIG_ENV_KEY, DEFAULT_CONFIG_PATH)
    values: dict[str, Any] = _read_yaml(config_path)
    values.update(env)

    missing = [key for key in REQUIRED_KEYS if not str(values.get(key) or "").strip()]
    if missing:
        raise ConfigError(f"Config missing {', '.join(missing)}")

    log_level = str(values.get("LOG_LEVEL") or "INFO").upper()
    if log_level not in VALID_LOG_LEVELS:
        raise ConfigError(
            f"Invalid log_level '{log_level}'. Must be one of {sorted(VALID_LOG_LEVELS)}"
        )

    free_games_hour = _as_int(values, "FREE_GAMES_HOUR", 0)
    if not 0 <= free_games_hour <= 23:
        raise ConfigError("'FREE_GAMES_HOUR' must be between 0 and 23")
    free_games_timezone = (
        _optional_str(values, "FREE_GAMES_TIMEZONE", None) or "America/New_York"
    )
    try:
        ZoneInfo(free_games_timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(
            f"Unknown FREE_GAMES_TIMEZONE '{free_games_timezone}'"
        ) from exc
    invite_refresh_minutes = _as_int(values, "INVITE_REFRESH_MINUTES", 10)
    if invite_refresh_minutes < 1:
        raise ConfigError("'INVITE_REFRESH_MINUTES' must be at least 1")

    return BotConfig(
        token=str(values["DISCORD_TOKEN"]).strip(),
        openai_api_key=str(values["OPENAI_API_KEY"]).strip(),
        epic_games_api_key=str(values["EPIC_GAMES_API_KEY"]).strip(),
        welcome_channel_id=_as_int(values, "WELCOME_CHANNEL_ID"),
        staff_channel_id=_as_int(values, "STAFF_CHANNEL_ID"),
        game_channel_id=_as_int(values, "GAME_CHANNEL_ID"),
        giphy_api_key=_optional_str(values, "GIPHY_API_KEY", None),
        log_level=log_level,
        log_file=_optional_str(values, "LOG_FILE", "bot.log"),
        openai_model=_optional_str(values, "OPENAI_MODEL", None) or "gpt-4o-mini",
        command_cooldown_seconds=_as_float(values, "COMMAND_COOLDOWN_SECONDS", 5.0),
        invite_refresh_minutes=invite_refresh_minutes,
        free_games_timezone=free_games_timezone,
        free_games_hour=free_games_hour,
        http_timeout_seconds=_as_float(values, "HTTP_TIMEOUT_SECONDS", 10.0),
        invite_match_self_only=_as_bool(values, "INVITE_MATCH_SELF_ONLY"),
    )
