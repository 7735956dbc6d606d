"""Request schemas validated at the service boundary."""
from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .database import SQL_INTEGER_MAX, SQL_INTEGER_MIN

NAME_MAX_LENGTH = 100
AGE_MIN = 1
AGE_MAX = 150
IDENTIFIER_MIN_LENGTH = 3
IDENTIFIER_MAX_LENGTH = 255
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 1024


class _CamelRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, str_strip_whitespace=True, extra="forbid")


class UserFields(_CamelRequest):
    """Every mutable field of a user; used for create and full update."""

    first_name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    last_name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    age: int = Field(..., ge=AGE_MIN, le=AGE_MAX, strict=True)


class UserPatch(_CamelRequest):
    """Any subset of the mutable fields; omitted fields stay ``None``."""

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=NAME_MAX_LENGTH)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=NAME_MAX_LENGTH)
    age: Optional[int] = Field(default=None, ge=AGE_MIN, le=AGE_MAX, strict=True)

    @field_validator("first_name", "last_name", "age", mode="before")
    @classmethod
    def _reject_null(cls, value: object) -> object:
        if value is None:
            raise ValueError("must not be null")
        return value


class UserListQuery(_CamelRequest):
    model_config = ConfigDict(alias_generator=to_camel, str_strip_whitespace=True, extra="ignore")

    first_name: Optional[str] = Field(default=None, max_length=NAME_MAX_LENGTH)
    last_name: Optional[str] = Field(default=None, max_length=NAME_MAX_LENGTH)
    min_age: Optional[int] = Field(default=None, ge=SQL_INTEGER_MIN, le=SQL_INTEGER_MAX)
    max_age: Optional[int] = Field(default=None, ge=SQL_INTEGER_MIN, le=SQL_INTEGER_MAX)
    limit: Optional[int] = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0, le=SQL_INTEGER_MAX)


def check_identifier(value: str) -> str:
    """Normalise an account identifier and enforce its length bounds."""

    normalized = value.strip().lower()
    if len(normalized) < IDENTIFIER_MIN_LENGTH:
        raise ValueError(f"identifier must be at least {IDENTIFIER_MIN_LENGTH} characters")
    if len(normalized) > IDENTIFIER_MAX_LENGTH:
        raise ValueError(f"identifier must be at most {IDENTIFIER_MAX_LENGTH} characters")
    return normalized


class RegisterRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    identifier: str
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("identifier")
    @classmethod
    def _normalize_identifier(cls, value: str) -> str:
        return check_identifier(value)


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    identifier: str = Field(..., min_length=1, max_length=IDENTIFIER_MAX_LENGTH)
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LENGTH)


def error_details(exc: ValidationError) -> Dict[str, str]:
    """Map every offending field to its first error message."""

    details: Dict[str, str] = {}
    for error in exc.errors(include_url=False):
        location = ".".join(str(part) for part in error["loc"]) or "body"
        details.setdefault(location, error["msg"])
    return details


__all__ = [
    "LoginRequest",
    "RegisterRequest",
    "UserFields",
    "UserListQuery",
    "UserPatch",
    "check_identifier",
    "error_details",
]
