from __future__ import annotations

import asyncio
import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from lookup_bot.storage.principals import is_referral_code, make_referral_code  # noqa: E402
from lookup_bot.storage.store import LookupStore  # noqa: E402


async def _store(db_path: Path) -> LookupStore:
    store = LookupStore(db_path)
    await store.init()
    return store


def test_referral_code_helpers() -> None:
    assert make_referral_code("42") == "REF42"
    assert is_referral_code("REF42")
    assert not is_referral_code("REF")
    assert not is_referral_code("hello")
    assert not is_referral_code(None)


def test_first_contact_registers_with_base_balance(tmp_path: Path) -> None:
    async def scenario() -> None:
        store = await _store(tmp_path / "lookup.db")
        result = await store.register_principal("1", username="alice", display_name="Alice")

        assert result.is_new is True
        assert result.used_referral is False
        assert result.balance == 10

        principal = await store.get_principal("1")
        assert principal is not None
        assert principal["balance"] == 10
        assert principal["referral_code"] == "REF1"
        assert principal["display_name"] == "Alice"
        assert principal["is_banned"] is False

    asyncio.run(scenario())


def test_referral_credits_both_sides_once(tmp_path: Path) -> None:
    async def scenario() -> None:
        store = await _store(tmp_path / "lookup.db")
        await store.register_principal("1", username="referrer")

        joined = await store.register_principal("2", username="friend", referral_code="REF1")
        assert joined.is_new is True
        assert joined.used_referral is True
        assert joined.referrer_id == "1"
        assert joined.referral_bonus == 5
        assert await store.get_balance("2") == 15

        again = await store.register_principal("2", username="friend", referral_code="REF1")
        assert again.is_new is False
        assert await store.get_balance("2") == 15

        summary = await store.get_referral_summary("1")
        assert summary == {
            "referral_code": "REF1",
            "total_referrals": 1,
            "balance": 15,
            "credits_earned": 5,
        }

    asyncio.run(scenario())


def test_self_and_unknown_referral_codes_are_ignored(tmp_path: Path) -> None:
    async def scenario() -> None:
        store = await _store(tmp_path / "lookup.db")

        own = await store.register_principal("7", referral_code="REF7")
        assert own.used_referral is False
        assert await store.get_balance("7") == 10

        unknown = await store.register_principal("8", referral_code="REF999")
        assert unknown.used_referral is False
        assert await store.get_balance("8") == 10

        garbage = await store.register_principal("9", referral_code="not-a-code")
        assert garbage.used_referral is False

    asyncio.run(scenario())


def test_returning_principal_keeps_balance_and_updates_profile(tmp_path: Path) -> None:
    async def scenario() -> None:
        store = await _store(tmp_path / "lookup.db")
        await store.register_principal("1", username="old", display_name="Old Name")
        await store.set_balance("1", 3)

        result = await store.register_principal("1", username="new", display_name=None)

        assert result.is_new is False
        principal = await store.get_principal("1")
        assert principal is not None
        assert principal["username"] == "new"
        assert principal["display_name"] == "Old Name"
        assert principal["balance"] == 3

    asyncio.run(scenario())


def test_summary_for_unknown_principal_is_none(tmp_path: Path) -> None:
    async def scenario() -> None:
        store = await _store(tmp_path / "lookup.db")
        assert await store.get_referral_summary("nobody") is None
        assert await store.get_principal("nobody") is None
        assert await store.get_ban_status("nobody") == (False, None)

    asyncio.run(scenario())
