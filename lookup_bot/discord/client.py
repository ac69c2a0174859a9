from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

import discord

from ..common import chunk_text
from ..config import Settings
from ..conversation.events import InboundEvent, parse_inbound
from ..conversation.machine import ConversationMachine
from ..conversation.replies import KEYBOARD_ROWS, Keyboard, Reply, ReplySink
from ..services.lookup_client import LookupClient
from ..storage.store import LookupStore

logger = logging.getLogger("lookup_bot")

_PRIMARY_LABEL_ROW = 0


class KeyboardView(discord.ui.View):
    """Reply keyboard rendered as button rows; a press is dispatched as the button's label."""

    def __init__(self, bot: "LookupDiscordBot", keyboard: Keyboard) -> None:
        super().__init__(timeout=None)
        self.bot = bot
        for row_index, row in enumerate(KEYBOARD_ROWS[keyboard]):
            for label in row:
                style = discord.ButtonStyle.primary if row_index == _PRIMARY_LABEL_ROW else discord.ButtonStyle.secondary
                button: discord.ui.Button[Any] = discord.ui.Button(label=label, style=style, row=row_index)
                button.callback = self._make_callback(label)  # type: ignore[method-assign]
                self.add_item(button)

    def _make_callback(self, label: str):  # type: ignore[no-untyped-def]
        async def _callback(interaction: discord.Interaction) -> None:
            await self.bot.on_keyboard_press(interaction, label)

        return _callback


def _author_names(user: discord.abc.User) -> tuple[str | None, str | None]:
    username = (user.name or "").strip() or None
    display_name = (getattr(user, "global_name", None) or "").strip() or None
    return username, display_name


class LookupDiscordBot(discord.Client):
    def __init__(
        self,
        settings: Settings,
        store: LookupStore,
        lookup: LookupClient,
        machine: ConversationMachine,
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = settings.discord_message_content_intent
        intents.dm_messages = True

        super().__init__(intents=intents)

        self.settings = settings
        self.store = store
        self.lookup = lookup
        self.machine = machine
        self.session_reaper_task: asyncio.Task[None] | None = None

    async def setup_hook(self) -> None:
        version = await self.store.init()
        logger.info("Store ready at %s (schema v%s)", self.store.db_path, version)
        await self.lookup.start()
        self.session_reaper_task = asyncio.create_task(self._session_reaper(), name="session-reaper")

    async def close(self) -> None:
        await self._cancel_task(self.session_reaper_task)
        await self._run_shutdown_step("lookup.close", self.lookup.close(), timeout=6.0)
        await self._run_shutdown_step("discord.Client.close", super().close(), timeout=6.0)

    async def _run_shutdown_step(self, label: str, coro: object, *, timeout: float) -> None:
        try:
            await asyncio.wait_for(coro, timeout=timeout)  # type: ignore[arg-type]
        except asyncio.TimeoutError:
            logger.warning("Shutdown step timed out: %s", label)
        except Exception as exc:
            logger.warning("Shutdown step failed: %s (%s)", label, exc)

    async def _cancel_task(self, task: asyncio.Task[None] | None) -> None:
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _session_reaper(self) -> None:
        sessions = self.machine.sessions
        interval = max(30.0, sessions.idle_seconds / 4)
        while True:
            await asyncio.sleep(interval)
            reaped = sessions.reap_idle()
            if reaped:
                logger.info("Reaped %s idle conversation sessions (%s active)", reaped, len(sessions))

    async def on_ready(self) -> None:
        if self.user:
            logger.info("Connected as %s (%s)", self.user, self.user.id)

    def _should_handle(self, message: discord.Message) -> bool:
        if message.guild is None:
            return True
        return message.channel.id in self.settings.lookup_channel_ids

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot:
            return
        if not self._should_handle(message):
            return

        content = message.content or ""
        if not content.strip():
            return
        username, display_name = _author_names(message.author)
        event = parse_inbound(
            message.author.id,
            content,
            self.settings.command_prefix,
            username=username,
            display_name=display_name,
        )
        await self._run_event(event, message.channel)

    async def on_keyboard_press(self, interaction: discord.Interaction, label: str) -> None:
        # Acknowledge the component interaction first; replies go to the channel.
        with contextlib.suppress(discord.HTTPException):
            await interaction.response.defer()
        channel = interaction.channel
        if channel is None:
            return
        username, display_name = _author_names(interaction.user)
        event = parse_inbound(
            interaction.user.id,
            label,
            self.settings.command_prefix,
            username=username,
            display_name=display_name,
        )
        await self._run_event(event, channel)

    async def _run_event(self, event: InboundEvent, channel: discord.abc.Messageable) -> None:
        try:
            async with channel.typing():
                await self.machine.handle(event, self._channel_sink(channel))
        except Exception as exc:
            logger.exception("Event from %s failed: %s", event.principal_id, exc)
            with contextlib.suppress(discord.HTTPException):
                await channel.send("I failed to process that right now. Please try again.")

    def _channel_sink(self, channel: discord.abc.Messageable) -> ReplySink:
        async def _send(reply: Reply) -> None:
            await self._send_reply(channel, reply)

        return _send

    async def _send_reply(self, channel: discord.abc.Messageable, reply: Reply) -> None:
        chunks = chunk_text(reply.text, 1900)
        for index, chunk in enumerate(chunks):
            kwargs: dict[str, Any] = {}
            is_last = index == len(chunks) - 1
            if is_last and reply.keyboard is not None and reply.keyboard is not Keyboard.REMOVE:
                kwargs["view"] = KeyboardView(self, reply.keyboard)
            await channel.send(chunk, **kwargs)
