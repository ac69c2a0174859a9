from .admin import StoreAdminMixin
from .history import HistoryView, StoreHistoryMixin
from .ledger import DebitResult, StoreLedgerMixin
from .principals import RegistrationResult, StorePrincipalsMixin
from .schema import MIGRATIONS, StoreSchemaMixin
from .store import LookupStore

__all__ = [
    "DebitResult",
    "HistoryView",
    "LookupStore",
    "MIGRATIONS",
    "RegistrationResult",
    "StoreAdminMixin",
    "StoreHistoryMixin",
    "StoreLedgerMixin",
    "StorePrincipalsMixin",
    "StoreSchemaMixin",
]
