from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Set

from dotenv import load_dotenv


load_dotenv()

_TRUTHY = {"1", "true", "yes", "y", "on"}


def _env_str(name: str, default: str = "") -> str:
    value = (os.getenv(name) or "").strip()
    return value or default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    try:
        return int(_env_str(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(_env_str(name, str(default)))
    except ValueError:
        return default


def _env_id_set(name: str) -> Set[int]:
    chunks = (chunk.strip() for chunk in _env_str(name).split(","))
    return {int(chunk) for chunk in chunks if chunk.isdigit()}


def _clean_token(value: str) -> str:
    # Accept tokens pasted as "Bot xxx" or wrapped in quotes.
    token = value.strip().strip("\"'").strip()
    if token.lower().startswith("bot "):
        token = token[4:].strip()
    return token


@dataclass(slots=True)
class Settings:
    discord_token: str
    command_prefix: str
    discord_message_content_intent: bool
    lookup_channel_ids: Set[int]
    bot_display_name: str

    lookup_api_url: str
    lookup_api_key: str
    lookup_timeout_seconds: float

    sqlite_path: Path
    session_idle_seconds: int

    admin_host: str
    admin_port: int

    @classmethod
    def from_env(cls) -> "Settings":
        sqlite_path = Path(_env_str("SQLITE_PATH", "./data/lookup.db")).expanduser()
        return cls(
            discord_token=_clean_token(_env_str("DISCORD_TOKEN")),
            command_prefix=_env_str("DISCORD_COMMAND_PREFIX", "!"),
            discord_message_content_intent=_env_bool("DISCORD_MESSAGE_CONTENT_INTENT", True),
            lookup_channel_ids=_env_id_set("LOOKUP_CHANNEL_IDS"),
            bot_display_name=_env_str("BOT_DISPLAY_NAME", "Lookup Bot"),
            lookup_api_url=_env_str("LOOKUP_API_URL"),
            lookup_api_key=_env_str("LOOKUP_API_KEY"),
            lookup_timeout_seconds=_env_float("LOOKUP_TIMEOUT_SECONDS", 15.0),
            sqlite_path=sqlite_path,
            session_idle_seconds=_env_int("SESSION_IDLE_SECONDS", 1800),
            admin_host=_env_str("ADMIN_HOST", "127.0.0.1"),
            admin_port=_env_int("ADMIN_PORT", 3000),
        )

    def validate(self) -> None:
        if not self.discord_token:
            raise ValueError("DISCORD_TOKEN is required in .env")
        self.validate_lookup()
        if self.session_idle_seconds < 60:
            raise ValueError("SESSION_IDLE_SECONDS must be >= 60")

    def validate_lookup(self) -> None:
        if not self.lookup_api_url:
            raise ValueError("LOOKUP_API_URL is required in .env")
        if not self.lookup_api_key:
            raise ValueError("LOOKUP_API_KEY is required in .env")
        if self.lookup_timeout_seconds <= 0:
            raise ValueError("LOOKUP_TIMEOUT_SECONDS must be > 0")
