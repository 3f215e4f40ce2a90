"""Pydantic schemas for the availability ledger."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class LedgerEntryResponse(BaseModel):
    """Schema for a ledger entry."""

    user_id: int
    book_isbn: str
    is_available: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CollectionItem(BaseModel):
    """A book in an owner's collection, as listed to the owner."""

    isbn: str
    title: str
    author: Optional[str] = None
    cover_url: Optional[str] = None
    is_available: bool
    created_at: datetime
    updated_at: datetime
