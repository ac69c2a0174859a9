from .events import InboundEvent, parse_inbound, parse_search_input
from .machine import ConversationMachine
from .replies import Keyboard, Reply, ReplySink
from .sessions import ConversationState, PrincipalSession, SessionRegistry

__all__ = [
    "ConversationMachine",
    "ConversationState",
    "InboundEvent",
    "Keyboard",
    "PrincipalSession",
    "Reply",
    "ReplySink",
    "SessionRegistry",
    "parse_inbound",
    "parse_search_input",
]
