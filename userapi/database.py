"""SQLite-backed persistence for accounts and users."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from sqlalchemy import DateTime, Integer, String, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

# SQLite stores INTEGER columns as signed 64-bit values.
SQL_INTEGER_MIN = -(2**63)
SQL_INTEGER_MAX = 2**63 - 1


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo on the way back out; stored values are always UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class UserRecord(Base):
    __tablename__ = "users"
    # AUTOINCREMENT keeps ids from being reused after a delete.
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    age: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AccountRecord(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    identifier: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Database:
    """Simple wrapper around a SQLAlchemy engine bound to a SQLite file."""

    def __init__(self, path: Path, *, echo: bool = False) -> None:
        _ensure_directory(path)
        self._path = path
        self._engine = create_engine(
            f"sqlite:///{path}",
            echo=echo,
            connect_args={"check_same_thread": False},
        )
        self._sessions = sessionmaker(self._engine, expire_on_commit=False)

    @property
    def path(self) -> Path:
        return self._path

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        Base.metadata.create_all(self._engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a session whose work is committed atomically, or rolled back on error."""

        with self._sessions.begin() as session:
            yield session

    def dispose(self) -> None:
        self._engine.dispose()


__all__ = [
    "AccountRecord",
    "Base",
    "Database",
    "SQL_INTEGER_MAX",
    "SQL_INTEGER_MIN",
    "UserRecord",
    "as_utc",
    "current_timestamp",
]
