from __future__ import annotations

from .admin import StoreAdminMixin
from .history import StoreHistoryMixin
from .ledger import StoreLedgerMixin
from .principals import StorePrincipalsMixin
from .schema import StoreSchemaMixin


class LookupStore(
    StoreSchemaMixin,
    StorePrincipalsMixin,
    StoreLedgerMixin,
    StoreHistoryMixin,
    StoreAdminMixin,
):
    """SQLite-backed principals, credit ledger, referral grants and deduplicated search history."""
