"""Database module for the relational store."""

from .database import Database, get_db, reset_db
from .models import Base, Book, User
from .schemas import BookCreate, ContactPreference, UserCreate

__all__ = [
    "Base",
    "Book",
    "User",
    "BookCreate",
    "ContactPreference",
    "UserCreate",
    "Database",
    "get_db",
    "reset_db",
]
