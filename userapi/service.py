"""Validation and business rules sitting between the HTTP layer and persistence."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Mapping, Optional, Type, TypeVar

import pydantic
from pydantic import BaseModel

from .credentials import CredentialStore, DuplicateAccount
from .errors import NotFound, Unauthenticated, ValidationError
from .models import Account, User
from .repository import MAX_USER_ID, RecordNotFound, UserFilters, UserRepository, clamp_limit
from .schemas import LoginRequest, RegisterRequest, UserFields, UserListQuery, UserPatch, error_details
from .tokens import TokenService

logger = logging.getLogger("userapi.service")

_SchemaT = TypeVar("_SchemaT", bound=BaseModel)


def _validate(schema: Type[_SchemaT], payload: object) -> _SchemaT:
    if not isinstance(payload, Mapping):
        raise ValidationError(
            "Request body must be a JSON object",
            details={"body": "Expected a JSON object"},
        )
    try:
        return schema.model_validate(dict(payload))
    except pydantic.ValidationError as exc:
        raise ValidationError(details=error_details(exc)) from None


def _parse_user_id(raw: object) -> int:
    """Ids are positive integers; anything else cannot name an existing user."""

    text = str(raw).strip()
    if not (text.isascii() and text.isdigit()) or not 1 <= int(text) <= MAX_USER_ID:
        raise NotFound("User not found", details={"id": text})
    return int(text)


@dataclass(frozen=True)
class UserPage:
    items: List[User]
    limit: int
    offset: int


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_in: timedelta
    account: Account


class UserService:
    """Validate user payloads and orchestrate the repository."""

    def __init__(self, repository: UserRepository) -> None:
        self._repository = repository

    def create_user(self, payload: object) -> User:
        fields = _validate(UserFields, payload)
        user = self._repository.create(fields.model_dump())
        logger.info("Created user %s", user.id)
        return user

    def get_user(self, raw_id: object) -> User:
        user_id = _parse_user_id(raw_id)
        try:
            return self._repository.get_by_id(user_id)
        except RecordNotFound:
            raise NotFound("User not found", details={"id": user_id}) from None

    def list_users(self, query: Mapping[str, Optional[str]]) -> UserPage:
        supplied = {key: value for key, value in query.items() if value not in (None, "")}
        params = _validate(UserListQuery, supplied)
        filters = UserFilters(
            first_name=params.first_name or None,
            last_name=params.last_name or None,
            min_age=params.min_age,
            max_age=params.max_age,
        )
        limit = clamp_limit(params.limit)
        items = self._repository.list(filters, limit=limit, offset=params.offset)
        return UserPage(items=items, limit=limit, offset=params.offset)

    def replace_user(self, raw_id: object, payload: object) -> User:
        user_id = _parse_user_id(raw_id)
        fields = _validate(UserFields, payload)
        try:
            user = self._repository.update(user_id, fields.model_dump())
        except RecordNotFound:
            raise NotFound("User not found", details={"id": user_id}) from None
        logger.info("Replaced user %s", user.id)
        return user

    def patch_user(self, raw_id: object, payload: object) -> User:
        user_id = _parse_user_id(raw_id)
        patch = _validate(UserPatch, payload)
        changes = patch.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError(
                "At least one field must be supplied",
                details={"body": "Supply at least one of firstName, lastName, age"},
            )
        try:
            user = self._repository.patch(user_id, changes)
        except RecordNotFound:
            raise NotFound("User not found", details={"id": user_id}) from None
        logger.info("Patched user %s (%s)", user.id, ", ".join(sorted(changes)))
        return user

    def delete_user(self, raw_id: object) -> None:
        user_id = _parse_user_id(raw_id)
        try:
            self._repository.delete(user_id)
        except RecordNotFound:
            raise NotFound("User not found", details={"id": user_id}) from None
        logger.info("Deleted user %s", user_id)


class AccountService:
    """Register accounts and exchange credentials for bearer tokens."""

    def __init__(self, credentials: CredentialStore, tokens: TokenService) -> None:
        self._credentials = credentials
        self._tokens = tokens

    def register(self, payload: object) -> IssuedToken:
        request = _validate(RegisterRequest, payload)
        try:
            account = self._credentials.register(request.identifier, request.password)
        except DuplicateAccount:
            raise ValidationError(
                "Identifier is already registered",
                details={"identifier": "An account with that identifier already exists"},
            ) from None
        return self._issue(account)

    def login(self, payload: object) -> IssuedToken:
        request = _validate(LoginRequest, payload)
        account = self._credentials.authenticate(request.identifier, request.password)
        if account is None:
            logger.warning("Failed login attempt for %s", request.identifier.strip().lower())
            raise Unauthenticated("Invalid identifier or password")
        return self._issue(account)

    def _issue(self, account: Account) -> IssuedToken:
        token = self._tokens.issue(account.identifier)
        return IssuedToken(token=token, expires_in=self._tokens.ttl, account=account)


__all__ = ["AccountService", "IssuedToken", "UserPage", "UserService"]
