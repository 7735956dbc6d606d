"""Signed, time-limited bearer tokens."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

import jwt

from .database import current_timestamp

ALGORITHM = "HS256"
ISSUER = "userapi"


class TokenError(Exception):
    """Base class for token verification failures."""


class InvalidToken(TokenError):
    """The token is malformed, carries a bad signature or lacks required claims."""


class ExpiredToken(TokenError):
    """The token was valid once but its expiry has passed."""


class TokenService:
    """Issue and verify HS256 JWTs bound to an account identifier.

    The service is stateless: everything needed to validate a token is in the
    token itself plus the shared secret. Expiry is checked against the
    injected clock rather than the wall clock so it can be controlled in tests.
    """

    def __init__(
        self,
        secret: str,
        *,
        ttl: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = current_timestamp,
    ) -> None:
        if not secret:
            raise ValueError("A token secret must be provided")
        if ttl <= timedelta(0):
            raise ValueError("Token lifetime must be positive")
        self._secret = secret
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, identity: str, expires_in: Optional[timedelta] = None) -> str:
        issued_at = self._clock()
        lifetime = self._ttl if expires_in is None else expires_in
        claims = {
            "sub": identity,
            "iss": ISSUER,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + lifetime).timestamp()),
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> str:
        """Return the identity carried by ``token``."""

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                issuer=ISSUER,
                options={"require": ["sub", "iat", "exp"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidTokenError as exc:
            raise InvalidToken(str(exc)) from exc

        identity = claims["sub"]
        expires_at = claims["exp"]
        if not isinstance(identity, str) or not identity:
            raise InvalidToken("Token subject must be a non-empty string")
        if not isinstance(expires_at, int):
            raise InvalidToken("Token expiry must be an integer timestamp")
        if expires_at <= int(self._clock().timestamp()):
            raise ExpiredToken("Token has expired")
        return identity


__all__ = ["ExpiredToken", "InvalidToken", "TokenError", "TokenService"]
