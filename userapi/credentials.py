"""Account registration and password verification."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from .database import AccountRecord, Database, as_utc, current_timestamp
from .models import Account
from .schemas import check_identifier

logger = logging.getLogger("userapi.credentials")

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class DuplicateAccount(ValueError):
    """Raised when registering an identifier that already exists."""


def normalize_identifier(identifier: str) -> str:
    return identifier.strip().lower()


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


class CredentialStore:
    """Persist account credentials and check them on login."""

    def __init__(
        self,
        database: Database,
        *,
        clock: Callable[[], datetime] = current_timestamp,
    ) -> None:
        self._database = database
        self._clock = clock

    def register(self, identifier: str, password: str) -> Account:
        """Create an account; the password is stored only as a PBKDF2 hash.

        Raises ``ValueError`` for an identifier outside the allowed length and
        ``DuplicateAccount`` when it is already registered.
        """

        if not password:
            raise ValueError("Password must not be empty")

        normalized = check_identifier(identifier)
        record = AccountRecord(
            identifier=normalized,
            password_hash=hash_password(password),
            created_at=self._clock(),
        )
        try:
            with self._database.session() as session:
                session.add(record)
                session.flush()
                account = self._record_to_account(record)
        except IntegrityError as exc:
            raise DuplicateAccount("An account with that identifier already exists") from exc

        logger.info("Registered account %s", account.id)
        return account

    def authenticate(self, identifier: str, password: str) -> Account | None:
        """Return the account when the password matches, otherwise ``None``."""

        with self._database.session() as session:
            record = session.scalars(
                select(AccountRecord).where(AccountRecord.identifier == normalize_identifier(identifier))
            ).first()
            if record is None:
                return None
            if not verify_password(password, record.password_hash):
                return None
            return self._record_to_account(record)

    @staticmethod
    def _record_to_account(record: AccountRecord) -> Account:
        return Account(id=record.id, identifier=record.identifier, created_at=as_utc(record.created_at))


__all__ = [
    "CredentialStore",
    "DuplicateAccount",
    "hash_password",
    "normalize_identifier",
    "verify_password",
]
