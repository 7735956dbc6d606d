"""Unit tests for the validation layer in front of the repository."""

from __future__ import annotations

from datetime import timedelta

import pytest

from userapi.credentials import CredentialStore
from userapi.database import Database
from userapi.errors import NotFound, Unauthenticated, ValidationError
from userapi.repository import UserRepository
from userapi.service import AccountService, UserService
from userapi.tokens import TokenService


@pytest.fixture()
def users(database: Database, clock) -> UserService:
    return UserService(UserRepository(database, clock=clock))


@pytest.fixture()
def accounts(database: Database, clock) -> AccountService:
    tokens = TokenService("service-tests-secret-key-of-decent-size", ttl=timedelta(minutes=15), clock=clock)
    return AccountService(CredentialStore(database, clock=clock), tokens)


def test_create_strips_names_and_returns_typed_user(users: UserService) -> None:
    user = users.create_user({"firstName": "  Ada ", "lastName": "Lovelace", "age": 36})

    assert user.first_name == "Ada"
    assert users.get_user(str(user.id)) == user


def test_create_rejects_non_object_body(users: UserService) -> None:
    with pytest.raises(ValidationError) as excinfo:
        users.create_user(["Ada", "Lovelace", 36])

    assert excinfo.value.details == {"body": "Expected a JSON object"}


def test_validation_error_names_each_field_once(users: UserService) -> None:
    with pytest.raises(ValidationError) as excinfo:
        users.create_user({"firstName": 7, "lastName": "", "age": True})

    assert set(excinfo.value.details) == {"firstName", "lastName", "age"}
    assert all(isinstance(message, str) and message for message in excinfo.value.details.values())


def test_not_found_is_translated(users: UserService) -> None:
    with pytest.raises(NotFound) as excinfo:
        users.get_user("41")

    assert excinfo.value.details == {"id": 41}


def test_list_drops_empty_parameters_and_clamps(users: UserService) -> None:
    users.create_user({"firstName": "Ada", "lastName": "Lovelace", "age": 36})

    page = users.list_users({"firstName": "", "limit": "250", "offset": None})

    assert page.limit == 100
    assert page.offset == 0
    assert [user.first_name for user in page.items] == ["Ada"]


def test_list_with_inverted_age_bounds_is_empty(users: UserService) -> None:
    users.create_user({"firstName": "Ada", "lastName": "Lovelace", "age": 36})

    assert users.list_users({"minAge": "40", "maxAge": "30"}).items == []


def test_list_rejects_zero_limit(users: UserService) -> None:
    with pytest.raises(ValidationError) as excinfo:
        users.list_users({"limit": "0"})

    assert "limit" in excinfo.value.details


def test_patch_refreshes_updated_at(users: UserService, clock) -> None:
    user = users.create_user({"firstName": "Ada", "lastName": "Lovelace", "age": 36})
    clock.advance(hours=1)

    patched = users.patch_user(user.id, {"lastName": "King"})

    assert patched.last_name == "King"
    assert patched.updated_at == user.updated_at + timedelta(hours=1)


def test_register_then_login_issue_tokens(accounts: AccountService) -> None:
    registered = accounts.register({"identifier": "Ada@Example.com", "password": "secret123"})
    logged_in = accounts.login({"identifier": "ada@example.com", "password": "secret123"})

    assert registered.account == logged_in.account
    assert registered.account.identifier == "ada@example.com"
    assert registered.expires_in == timedelta(minutes=15)


def test_login_failure_is_unauthenticated(accounts: AccountService) -> None:
    accounts.register({"identifier": "ada@example.com", "password": "secret123"})

    with pytest.raises(Unauthenticated):
        accounts.login({"identifier": "ada@example.com", "password": "not-the-password"})


def test_id_beyond_storage_range_is_not_found(users: UserService) -> None:
    with pytest.raises(NotFound):
        users.get_user(str(2**63))
    with pytest.raises(NotFound):
        users.delete_user("9" * 25)


def test_list_rejects_offset_beyond_storage_range(users: UserService) -> None:
    with pytest.raises(ValidationError) as excinfo:
        users.list_users({"offset": str(2**63), "minAge": "9" * 25})

    assert set(excinfo.value.details) == {"offset", "minAge"}
