from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable


class ConversationState(str, Enum):
    IDLE = "idle"
    AWAITING_INPUT = "awaiting_input"


@dataclass(slots=True)
class PrincipalSession:
    principal_id: str
    state: ConversationState = ConversationState.IDLE
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_seen: float = 0.0


class SessionRegistry:
    """Per-principal conversation sessions, created on demand and dropped once idle.

    A session's lock serializes every event for that principal. Sessions whose lock is held
    are never reaped.
    """

    def __init__(self, idle_seconds: float = 1800.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.idle_seconds = float(idle_seconds)
        self._clock = clock
        self._sessions: dict[str, PrincipalSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, principal_id: str) -> PrincipalSession:
        key = str(principal_id)
        session = self._sessions.get(key)
        if session is None:
            session = PrincipalSession(principal_id=key)
            self._sessions[key] = session
        session.last_seen = self._clock()
        return session

    def state_of(self, principal_id: str) -> ConversationState:
        session = self._sessions.get(str(principal_id))
        return session.state if session is not None else ConversationState.IDLE

    def reap_idle(self) -> int:
        cutoff = self._clock() - self.idle_seconds
        stale = [
            key
            for key, session in self._sessions.items()
            if session.last_seen < cutoff and not session.lock.locked()
        ]
        for key in stale:
            del self._sessions[key]
        return len(stale)
