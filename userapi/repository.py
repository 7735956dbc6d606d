"""Persistence operations for :class:`~userapi.models.User` records."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy import delete, select, update

from .database import SQL_INTEGER_MAX, Database, UserRecord, as_utc, current_timestamp
from .models import User

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
MAX_USER_ID = SQL_INTEGER_MAX

_MUTABLE_FIELDS = ("first_name", "last_name", "age")


class RecordNotFound(LookupError):
    """Raised when a referenced user record does not exist."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} does not exist")
        self.user_id = user_id


@dataclass(frozen=True)
class UserFilters:
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    min_age: Optional[int] = None
    max_age: Optional[int] = None


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_PAGE_SIZE
    return min(limit, MAX_PAGE_SIZE)


def _contains_pattern(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class UserRepository:
    """CRUD and filtered listing of users.

    Listings are ordered by ascending ``id``. Ids come from a monotonically
    increasing sequence that is never reused, so this is insertion order and
    is stable across identical queries.
    """

    def __init__(
        self,
        database: Database,
        *,
        clock: Callable[[], datetime] = current_timestamp,
    ) -> None:
        self._database = database
        self._clock = clock

    def create(self, fields: Mapping[str, Any]) -> User:
        now = self._clock()
        record = UserRecord(
            first_name=fields["first_name"],
            last_name=fields["last_name"],
            age=fields["age"],
            created_at=now,
            updated_at=now,
        )
        with self._database.session() as session:
            session.add(record)
            session.flush()
            return self._record_to_user(record)

    def get_by_id(self, user_id: int) -> User:
        with self._database.session() as session:
            record = session.get(UserRecord, user_id)
            if record is None:
                raise RecordNotFound(user_id)
            return self._record_to_user(record)

    def list(
        self,
        filters: UserFilters | None = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[User]:
        filters = filters or UserFilters()
        statement = select(UserRecord)
        if filters.first_name:
            statement = statement.where(
                UserRecord.first_name.ilike(_contains_pattern(filters.first_name), escape="\\")
            )
        if filters.last_name:
            statement = statement.where(
                UserRecord.last_name.ilike(_contains_pattern(filters.last_name), escape="\\")
            )
        if filters.min_age is not None:
            statement = statement.where(UserRecord.age >= filters.min_age)
        if filters.max_age is not None:
            statement = statement.where(UserRecord.age <= filters.max_age)
        statement = statement.order_by(UserRecord.id).limit(clamp_limit(limit)).offset(offset)

        with self._database.session() as session:
            records = session.scalars(statement).all()
            return [self._record_to_user(record) for record in records]

    def update(self, user_id: int, fields: Mapping[str, Any]) -> User:
        """Replace every mutable field of the user."""

        missing = [name for name in _MUTABLE_FIELDS if name not in fields]
        if missing:
            raise ValueError(f"Full update requires: {', '.join(missing)}")
        return self._apply(user_id, {name: fields[name] for name in _MUTABLE_FIELDS})

    def patch(self, user_id: int, partial_fields: Mapping[str, Any]) -> User:
        """Replace only the supplied mutable fields."""

        unknown = set(partial_fields) - set(_MUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown user fields: {', '.join(sorted(unknown))}")
        return self._apply(user_id, dict(partial_fields))

    def delete(self, user_id: int) -> None:
        with self._database.session() as session:
            result = session.execute(delete(UserRecord).where(UserRecord.id == user_id))
            if result.rowcount == 0:
                raise RecordNotFound(user_id)

    def _apply(self, user_id: int, values: Dict[str, Any]) -> User:
        values["updated_at"] = self._clock()
        with self._database.session() as session:
            # A single UPDATE statement so concurrent writers cannot interleave
            # a read-modify-write on the same row.
            result = session.execute(
                update(UserRecord)
                .where(UserRecord.id == user_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise RecordNotFound(user_id)
            record = session.get(UserRecord, user_id, populate_existing=True)
            if record is None:  # pragma: no cover - deleted within our own transaction
                raise RecordNotFound(user_id)
            return self._record_to_user(record)

    @staticmethod
    def _record_to_user(record: UserRecord) -> User:
        return User(
            id=record.id,
            first_name=record.first_name,
            last_name=record.last_name,
            age=record.age,
            created_at=as_utc(record.created_at),
            updated_at=as_utc(record.updated_at),
        )


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "MAX_USER_ID",
    "RecordNotFound",
    "UserFilters",
    "UserRepository",
    "clamp_limit",
]
