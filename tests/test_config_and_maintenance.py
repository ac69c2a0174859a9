from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from lookup_bot import maintenance  # noqa: E402
from lookup_bot.config import Settings  # noqa: E402
from lookup_bot.storage.store import LookupStore  # noqa: E402


def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "DISCORD_TOKEN",
        "LOOKUP_API_URL",
        "LOOKUP_API_KEY",
        "LOOKUP_CHANNEL_IDS",
        "LOOKUP_TIMEOUT_SECONDS",
        "SESSION_IDLE_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("DISCORD_TOKEN", '"Bot abc.def"')
    monkeypatch.setenv("LOOKUP_API_URL", "https://lookup.example/api")
    monkeypatch.setenv("LOOKUP_API_KEY", "k")
    monkeypatch.setenv("LOOKUP_CHANNEL_IDS", "10, 20,junk")
    monkeypatch.setenv("SQLITE_PATH", str(tmp_path / "db" / "lookup.db"))

    settings = Settings.from_env()
    settings.validate()

    assert settings.discord_token == "abc.def"
    assert settings.lookup_api_url == "https://lookup.example/api"
    assert settings.lookup_channel_ids == {10, 20}
    assert settings.lookup_timeout_seconds == 15.0
    assert settings.sqlite_path == tmp_path / "db" / "lookup.db"


def test_settings_require_lookup_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("DISCORD_TOKEN", "abc")

    with pytest.raises(ValueError, match="LOOKUP_API_URL"):
        Settings.from_env().validate()


def test_maintenance_migrate_and_clear_history(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    db_path = tmp_path / "lookup.db"

    assert maintenance.main(["--db", str(db_path), "migrate"]) == 0
    assert f"version {LookupStore.SCHEMA_VERSION}" in capsys.readouterr().out

    async def seed() -> None:
        store = LookupStore(db_path)
        await store.register_principal("1")
        await store.append_if_new("1", "9876543210", [{"id": 1}, {"id": 2}])
        await store.append_if_new("1", "1234567890", [{"id": 3}])

    asyncio.run(seed())

    assert maintenance.main(["--db", str(db_path), "clear-history"]) == 0
    assert "Deleted 2 search record(s)" in capsys.readouterr().out


def test_malformed_numbers_fall_back_to_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("LOOKUP_TIMEOUT_SECONDS", "soon")
    monkeypatch.setenv("SESSION_IDLE_SECONDS", " 900 ")

    settings = Settings.from_env()

    assert settings.lookup_timeout_seconds == 15.0
    assert settings.session_idle_seconds == 900
