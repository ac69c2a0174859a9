from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Tuple

import aiohttp

from ..errors import GatewayUnavailable
from ..storage.utils import normalize_result_id

logger = logging.getLogger("lookup_bot")


class LookupStatus(str, Enum):
    FOUND = "found"
    EMPTY = "empty"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True, slots=True)
class LookupResult:
    result_id: str | None
    name: str | None = None
    father_name: str | None = None
    mobile: str | None = None
    alt_mobile: str | None = None
    address: str | None = None
    circle: str | None = None
    id_number: str | None = None
    email: str | None = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "LookupResult":
        def _text(key: str) -> str | None:
            value = record.get(key)
            if value is None:
                return None
            text = str(value).strip()
            return text or None

        return cls(
            result_id=normalize_result_id(record.get("id")),
            name=_text("name"),
            father_name=_text("father_name"),
            mobile=_text("mobile"),
            alt_mobile=_text("alt_mobile"),
            address=_text("address"),
            circle=_text("circle"),
            id_number=_text("id_number"),
            email=_text("email"),
            raw=dict(record),
        )


@dataclass(frozen=True, slots=True)
class LookupOutcome:
    status: LookupStatus
    results: Tuple[LookupResult, ...] = ()
    error: str = ""

    @classmethod
    def found(cls, results: Tuple[LookupResult, ...]) -> "LookupOutcome":
        return cls(status=LookupStatus.FOUND, results=tuple(results))

    @classmethod
    def empty(cls) -> "LookupOutcome":
        return cls(status=LookupStatus.EMPTY)

    @classmethod
    def unavailable(cls, error: str) -> "LookupOutcome":
        return cls(status=LookupStatus.UNAVAILABLE, error=error)


def classify_payload(payload: Any) -> LookupOutcome:
    if not isinstance(payload, dict):
        return LookupOutcome.unavailable(f"unexpected payload type {type(payload).__name__}")
    records = payload.get("result")
    if payload.get("success") and isinstance(records, list):
        results = tuple(LookupResult.from_record(item) for item in records if isinstance(item, dict))
        if results:
            return LookupOutcome.found(results)
    return LookupOutcome.empty()


class LookupClient:
    """Single-attempt client for the number lookup API.

    The caller validates the number; this client only forwards it and classifies the reply.
    """

    def __init__(self, api_url: str, api_key: str, timeout_seconds: float) -> None:
        self.api_url = api_url.strip()
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def _fetch(self, number: str) -> Any:
        if self._session is None or self._session.closed:
            await self.start()
        assert self._session is not None

        params = {"key": self.api_key, "num": number}
        try:
            async with self._session.get(self.api_url, params=params) as response:
                text = await response.text()
                if response.status < 200 or response.status >= 300:
                    raise GatewayUnavailable(f"Lookup API error {response.status}: {text[:200]}")
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError as exc:
            raise GatewayUnavailable("Lookup API timed out") from exc
        except aiohttp.ClientError as exc:
            raise GatewayUnavailable(f"Lookup API request failed: {exc}") from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise GatewayUnavailable(f"Lookup API returned invalid JSON: {text[:200]}") from exc

    async def search(self, number: str) -> LookupOutcome:
        try:
            payload = await self._fetch(number)
        except GatewayUnavailable as exc:
            logger.warning("Lookup for %s unavailable: %s", number, exc)
            return LookupOutcome.unavailable(str(exc))
        return classify_payload(payload)
