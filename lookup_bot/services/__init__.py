from .lookup_client import LookupClient, LookupOutcome, LookupResult, LookupStatus, classify_payload

__all__ = ["LookupClient", "LookupOutcome", "LookupResult", "LookupStatus", "classify_payload"]
