from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from ..errors import InsufficientBalance, PrincipalBanned, PrincipalNotFound, ValidationError
from ..services.lookup_client import LookupClient, LookupOutcome, LookupResult, LookupStatus
from ..storage.principals import RegistrationResult
from ..storage.store import LookupStore
from . import replies
from .events import InboundEvent, parse_search_input
from .replies import Keyboard, Reply, ReplySink
from .sessions import ConversationState, PrincipalSession, SessionRegistry

logger = logging.getLogger("lookup_bot")

SEARCH_COST = 1
RESULTS_PREVIEW_LIMIT = 5
ADDRESS_PREVIEW_CHARS = 100


class ConversationMachine:
    """Per-principal input collection and the spend-search-store sequence.

    Every event for a principal runs under that principal's session lock, including the
    lookup call, so a second message never interleaves with a search in flight.
    """

    def __init__(
        self,
        store: LookupStore,
        gateway: LookupClient,
        sessions: SessionRegistry,
        *,
        bot_name: str = "Lookup Bot",
        command_prefix: str = "!",
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.sessions = sessions
        self.bot_name = bot_name
        self.prefix = command_prefix

    async def handle(self, event: InboundEvent, send: ReplySink) -> None:
        session = self.sessions.get(event.principal_id)
        async with session.lock:
            registration = await self.store.register_principal(
                event.principal_id,
                username=event.username,
                display_name=event.display_name,
                referral_code=event.argument if event.command == "start" else None,
            )
            try:
                await self._ensure_not_banned(event.principal_id)
            except PrincipalBanned as exc:
                logger.info("Ignoring event from banned principal %s", event.principal_id)
                await send(Reply(replies.ban_notice(exc.reason), Keyboard.REMOVE))
                return
            await self._dispatch(session, event, registration, send)

    async def _ensure_not_banned(self, principal_id: str) -> None:
        banned, reason = await self.store.get_ban_status(principal_id)
        if banned:
            raise PrincipalBanned(principal_id, reason)

    async def _dispatch(
        self,
        session: PrincipalSession,
        event: InboundEvent,
        registration: RegistrationResult,
        send: ReplySink,
    ) -> None:
        command = event.command
        text = event.text

        if command == "start":
            name = event.display_name or event.username or "there"
            await send(Reply(replies.welcome(name, registration, self.prefix), Keyboard.MAIN))
            return
        if command == "search" or text == replies.SEARCH_LABEL:
            session.state = ConversationState.AWAITING_INPUT
            await send(Reply(replies.SEARCH_PROMPT, Keyboard.CANCEL))
            return
        if command == "cancel" or text == replies.CANCEL_LABEL:
            session.state = ConversationState.IDLE
            await send(Reply(replies.CANCELLED, Keyboard.MAIN))
            return
        if command == "help" or text == replies.HELP_LABEL:
            await send(Reply(replies.help_text(self.prefix), Keyboard.MAIN))
            return
        if command == "about" or text == replies.ABOUT_LABEL:
            await send(Reply(replies.about_text(self.bot_name), Keyboard.MAIN))
            return
        if command == "wallet" or text == replies.WALLET_LABEL:
            await self._send_summary(event.principal_id, send, wallet=True)
            return
        if command == "refer" or text == replies.REFER_LABEL:
            await self._send_summary(event.principal_id, send, wallet=False)
            return

        if session.state is ConversationState.AWAITING_INPUT:
            try:
                number = parse_search_input(text)
            except ValidationError as exc:
                await send(Reply(replies.invalid_input(exc.text), Keyboard.CANCEL))
                return
            session.state = ConversationState.IDLE
            await self._spend_search_store(event.principal_id, number, send)

    async def _send_summary(self, principal_id: str, send: ReplySink, *, wallet: bool) -> None:
        summary = await self.store.get_referral_summary(principal_id)
        if summary is None:
            # Deleted by an admin after this event registered it.
            raise PrincipalNotFound(principal_id)
        if wallet:
            text = replies.wallet_text(summary, SEARCH_COST)
        else:
            text = replies.referral_text(summary, self.bot_name, self.prefix)
        await send(Reply(text, Keyboard.MAIN))

    async def _charge(self, principal_id: str) -> int:
        debit = await self.store.try_debit(principal_id, SEARCH_COST)
        if not debit.ok:
            raise InsufficientBalance(debit.balance, SEARCH_COST)
        return debit.balance

    async def _spend_search_store(self, principal_id: str, number: str, send: ReplySink) -> None:
        try:
            await self._charge(principal_id)
        except InsufficientBalance as exc:
            await send(Reply(replies.insufficient_balance(exc.balance, exc.required), Keyboard.MAIN))
            return

        # From here on the credit is spent: every path ends in a delivered search or a refund.
        try:
            await send(Reply(replies.searching(SEARCH_COST), Keyboard.MAIN))
            outcome = await self.gateway.search(number)
        except asyncio.CancelledError:
            logger.warning("Lookup for %s cancelled after debit, refunding", principal_id)
            await asyncio.shield(self.store.credit(principal_id, SEARCH_COST))
            raise
        except Exception as exc:
            logger.exception("Lookup for %s failed after debit: %s", principal_id, exc)
            outcome = LookupOutcome.unavailable(str(exc))

        logger.info(
            "Principal %s searched %s: %s (%s results)",
            principal_id,
            number,
            outcome.status.value,
            len(outcome.results),
        )
        if outcome.status is LookupStatus.FOUND:
            await self._deliver_results(principal_id, number, outcome.results, send)
        elif outcome.status is LookupStatus.EMPTY:
            await send(Reply(replies.not_found(number), Keyboard.MAIN))
        else:
            await self._refund(principal_id, send)

    async def _deliver_results(
        self,
        principal_id: str,
        number: str,
        results: Sequence[LookupResult],
        send: ReplySink,
    ) -> None:
        total = len(results)
        shown = results[:RESULTS_PREVIEW_LIMIT]
        await send(Reply(replies.found_summary(number, total, len(shown))))
        for index, result in enumerate(shown, start=1):
            await send(Reply(replies.format_result(index, result, ADDRESS_PREVIEW_CHARS)))
        await send(Reply(replies.more_results(total, len(shown)), Keyboard.MAIN))

        balance = await self.store.get_balance(principal_id)
        await send(Reply(replies.remaining_balance(balance)))

        try:
            await self.store.append_if_new(principal_id, number, results)
        except Exception as exc:
            logger.exception("Failed to store search history for %s: %s", principal_id, exc)

    async def _refund(self, principal_id: str, send: ReplySink) -> None:
        try:
            balance = await self.store.credit(principal_id, SEARCH_COST)
        except Exception as exc:
            logger.exception("Refund of %s credit to %s failed: %s", SEARCH_COST, principal_id, exc)
            await send(Reply(replies.SERVICE_UNAVAILABLE_REFUND_FAILED, Keyboard.MAIN))
            return
        logger.info("Refunded %s credit to %s (balance %s)", SEARCH_COST, principal_id, balance)
        await send(Reply(replies.SERVICE_UNAVAILABLE_REFUNDED, Keyboard.MAIN))
