"""Availability ledger module.

Provides functionality for:
- Recording which owners hold a lendable copy of which book
- Manual availability toggles by the owner
- Locked availability reads and writes for the loan engine
"""

from .manager import LedgerManager
from .models import LedgerEntry
from .schemas import CollectionItem, LedgerEntryResponse

__all__ = [
    "LedgerManager",
    "LedgerEntry",
    "CollectionItem",
    "LedgerEntryResponse",
]
