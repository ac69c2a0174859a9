from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

pytest.importorskip("discord")

import lookup_bot.discord.client as client_mod  # noqa: E402
from lookup_bot.conversation.replies import KEYBOARD_ROWS, Keyboard, Reply  # noqa: E402


class _FakeTyping:
    async def __aenter__(self) -> None:
        return None

    async def __aexit__(self, *exc: object) -> None:
        return None


class _FakeChannel:
    def __init__(self, channel_id: int = 555) -> None:
        self.id = channel_id
        self.sent: list[tuple[str, dict[str, Any]]] = []

    def typing(self) -> _FakeTyping:
        return _FakeTyping()

    async def send(self, content: str, **kwargs: Any) -> None:
        self.sent.append((content, kwargs))


class _FakeResponse:
    def __init__(self) -> None:
        self.deferred = 0

    async def defer(self) -> None:
        self.deferred += 1


class _RecordingMachine:
    def __init__(self, *, raises: bool = False) -> None:
        self.events: list[Any] = []
        self._raises = raises

    async def handle(self, event: Any, send: Any) -> None:
        self.events.append(event)
        if self._raises:
            raise RuntimeError("store offline")
        await send(Reply("ok", Keyboard.MAIN))


def _fake_bot(machine: _RecordingMachine | None = None, channel_ids: set[int] | None = None) -> SimpleNamespace:
    bot = SimpleNamespace(
        settings=SimpleNamespace(command_prefix="!", lookup_channel_ids=channel_ids or set()),
        machine=machine or _RecordingMachine(),
    )
    bot._should_handle = lambda message: client_mod.LookupDiscordBot._should_handle(bot, message)
    bot._send_reply = lambda channel, reply: client_mod.LookupDiscordBot._send_reply(bot, channel, reply)
    bot._channel_sink = lambda channel: client_mod.LookupDiscordBot._channel_sink(bot, channel)
    bot._run_event = lambda event, channel: client_mod.LookupDiscordBot._run_event(bot, event, channel)
    return bot


def test_should_handle_dms_and_configured_channels_only() -> None:
    bot = _fake_bot(channel_ids={555})
    dm = SimpleNamespace(guild=None, channel=SimpleNamespace(id=1))
    allowed = SimpleNamespace(guild=object(), channel=SimpleNamespace(id=555))
    other = SimpleNamespace(guild=object(), channel=SimpleNamespace(id=777))

    assert client_mod.LookupDiscordBot._should_handle(bot, dm) is True
    assert client_mod.LookupDiscordBot._should_handle(bot, allowed) is True
    assert client_mod.LookupDiscordBot._should_handle(bot, other) is False


def test_long_replies_are_chunked_with_keyboard_on_last_chunk() -> None:
    async def scenario() -> _FakeChannel:
        channel = _FakeChannel()
        bot = _fake_bot()
        await client_mod.LookupDiscordBot._send_reply(bot, channel, Reply("x" * 4000, Keyboard.MAIN))
        await client_mod.LookupDiscordBot._send_reply(bot, channel, Reply("bye", Keyboard.REMOVE))
        return channel

    channel = asyncio.run(scenario())

    assert [len(content) for content, _ in channel.sent] == [1900, 1900, 200, 3]
    assert "view" not in channel.sent[0][1]
    assert "view" not in channel.sent[1][1]
    view = channel.sent[2][1]["view"]
    assert isinstance(view, client_mod.KeyboardView)
    labels = [child.label for child in view.children]
    assert labels == [label for row in KEYBOARD_ROWS[Keyboard.MAIN] for label in row]
    assert "view" not in channel.sent[3][1]


def test_message_from_user_is_dispatched() -> None:
    machine = _RecordingMachine()
    bot = _fake_bot(machine)
    channel = _FakeChannel()
    author = SimpleNamespace(id=42, bot=False, name="alice", global_name="Alice")
    message = SimpleNamespace(author=author, guild=None, channel=channel, content="  !start   REF7 ")

    asyncio.run(client_mod.LookupDiscordBot.on_message(bot, message))

    event = machine.events[0]
    assert event.principal_id == "42"
    assert event.command == "start"
    assert event.argument == "REF7"
    assert event.display_name == "Alice"
    assert channel.sent[0][0] == "ok"


def test_message_text_reaches_the_machine_unmodified() -> None:
    machine = _RecordingMachine()
    bot = _fake_bot(machine)
    author = SimpleNamespace(id=42, bot=False, name="alice", global_name=None)
    raw = "  98765  43210 "
    message = SimpleNamespace(author=author, guild=None, channel=_FakeChannel(), content=raw)

    asyncio.run(client_mod.LookupDiscordBot.on_message(bot, message))

    assert machine.events[0].text == raw
    assert machine.events[0].command is None


def test_whitespace_only_messages_are_ignored() -> None:
    machine = _RecordingMachine()
    bot = _fake_bot(machine)
    author = SimpleNamespace(id=42, bot=False, name="alice", global_name=None)
    message = SimpleNamespace(author=author, guild=None, channel=_FakeChannel(), content=" \n ")

    asyncio.run(client_mod.LookupDiscordBot.on_message(bot, message))

    assert machine.events == []


def test_bot_authors_are_ignored() -> None:
    machine = _RecordingMachine()
    bot = _fake_bot(machine)
    author = SimpleNamespace(id=1, bot=True, name="other-bot", global_name=None)
    message = SimpleNamespace(author=author, guild=None, channel=_FakeChannel(), content="!start")

    asyncio.run(client_mod.LookupDiscordBot.on_message(bot, message))

    assert machine.events == []


def test_keyboard_press_is_acknowledged_and_dispatched_as_label() -> None:
    machine = _RecordingMachine()
    bot = _fake_bot(machine)
    channel = _FakeChannel()
    interaction = SimpleNamespace(
        response=_FakeResponse(),
        channel=channel,
        user=SimpleNamespace(id=42, name="alice", global_name=None),
    )
    label = KEYBOARD_ROWS[Keyboard.MAIN][0][0]

    asyncio.run(client_mod.LookupDiscordBot.on_keyboard_press(bot, interaction, label))

    assert interaction.response.deferred == 1
    assert machine.events[0].text == label
    assert machine.events[0].command is None


def test_handler_failures_send_apology() -> None:
    bot = _fake_bot(_RecordingMachine(raises=True))
    channel = _FakeChannel()
    event = SimpleNamespace(principal_id="42")

    asyncio.run(client_mod.LookupDiscordBot._run_event(bot, event, channel))

    assert channel.sent == [("I failed to process that right now. Please try again.", {})]
