"""Domain models returned by the persistence layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class User:
    """A managed person record."""

    id: int
    first_name: str
    last_name: str
    age: int
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Account:
    """Credential holder allowed to call the protected API."""

    id: int
    identifier: str
    created_at: datetime


__all__ = ["Account", "User"]
