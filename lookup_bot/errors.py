from __future__ import annotations


class LookupBotError(Exception):
    """Base class for every error raised by the bot core."""


class PrincipalNotFound(LookupBotError):
    def __init__(self, principal_id: str) -> None:
        super().__init__(f"Principal not found: {principal_id}")
        self.principal_id = principal_id


class InvalidAmount(LookupBotError):
    def __init__(self, amount: int, reason: str = "amount must be positive") -> None:
        super().__init__(f"Invalid amount {amount!r}: {reason}")
        self.amount = amount


class ValidationError(LookupBotError):
    def __init__(self, text: str) -> None:
        super().__init__(f"Invalid search input: {text!r}")
        self.text = text


class InsufficientBalance(LookupBotError):
    def __init__(self, balance: int, required: int) -> None:
        super().__init__(f"Insufficient balance: have {balance}, need {required}")
        self.balance = balance
        self.required = required


class GatewayUnavailable(LookupBotError):
    pass


class PersistenceError(LookupBotError):
    pass


class PrincipalBanned(LookupBotError):
    def __init__(self, principal_id: str, reason: str | None = None) -> None:
        super().__init__(f"Principal {principal_id} is banned")
        self.principal_id = principal_id
        self.reason = reason
