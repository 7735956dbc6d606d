from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterator

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from userapi.api import create_app
from userapi.config import Settings
from userapi.database import Database


TOKEN_SECRET = "tests-secret-key-that-is-long-enough-for-hs256"
IDENTIFIER = "a@x.com"
PASSWORD = "secret123"


class FakeClock:
    """Manually advanced clock for timestamp and expiry assertions."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "userapi.sqlite3")
    db.initialize()
    return db


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_path=tmp_path / "userapi.sqlite3",
        token_secret=TOKEN_SECRET,
        rate_limit_ceiling=0,
    )


@pytest.fixture
def client(settings: Settings, database: Database) -> Iterator[TestClient]:
    app = create_app(settings=settings, database=database)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(client: TestClient) -> Dict[str, str]:
    response = client.post("/api/auth/register", json={"identifier": IDENTIFIER, "password": PASSWORD})
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}
