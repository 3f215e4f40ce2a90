"""Pydantic schemas for users and catalog books."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ContactPreference(str, Enum):
    """How a user wants to be contacted once a loan is agreed."""

    EMAIL = "email"
    PHONE = "phone"


def normalize_isbn(value: object) -> str:
    """Strip an ISBN-like identifier, rejecting empty values."""
    isbn = str(value if value is not None else "").strip()
    if not isbn:
        raise ValueError("isbn is required")
    if len(isbn) > 20:
        raise ValueError("isbn is too long")
    return isbn


class UserBase(BaseModel):
    """Base user fields."""

    username: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=200)
    phone: Optional[str] = Field(None, max_length=50)
    contact_preference: ContactPreference = ContactPreference.EMAIL
    is_trusted: bool = False
    is_admin: bool = False

    @field_validator("email")
    @classmethod
    def email_has_at(cls, v: str) -> str:
        """Reject obviously malformed email addresses."""
        v = v.strip()
        if "@" not in v:
            raise ValueError("email must contain '@'")
        return v.lower()


class UserCreate(UserBase):
    """Schema for creating a user."""

    pass


class BookCreate(BaseModel):
    """Schema for adding a book to the catalog."""

    isbn: str
    title: str = Field(..., min_length=1, max_length=500)
    author: Optional[str] = Field(None, max_length=500)
    cover_url: Optional[str] = None

    @field_validator("isbn", mode="before")
    @classmethod
    def clean_isbn(cls, v):
        """Trim the ISBN."""
        return normalize_isbn(v)
