from __future__ import annotations

import re
from dataclasses import dataclass

from ..errors import ValidationError

KNOWN_COMMANDS = frozenset({"start", "help", "about", "refer", "wallet", "search", "cancel"})

SEARCH_INPUT_PATTERN = re.compile(r"[0-9]{10}")


@dataclass(frozen=True, slots=True)
class InboundEvent:
    principal_id: str
    text: str
    username: str | None = None
    display_name: str | None = None
    command: str | None = None
    argument: str | None = None


def parse_inbound(
    principal_id: int | str,
    content: str,
    prefix: str,
    *,
    username: str | None = None,
    display_name: str | None = None,
) -> InboundEvent:
    """Split a raw message into a command (``!start REF42``) or plain text."""
    text = content or ""
    command: str | None = None
    argument: str | None = None
    stripped = text.strip()
    if prefix and stripped.startswith(prefix):
        head, _, rest = stripped[len(prefix) :].partition(" ")
        name = head.strip().lower()
        if name in KNOWN_COMMANDS:
            command = name
            argument = rest.strip() or None
    return InboundEvent(
        principal_id=str(principal_id),
        text=text,
        username=username,
        display_name=display_name,
        command=command,
        argument=argument,
    )


def parse_search_input(text: str | None) -> str:
    value = text or ""
    if not SEARCH_INPUT_PATTERN.fullmatch(value):
        raise ValidationError(value)
    return value
