"""Security helpers for the user API."""
from __future__ import annotations

import logging

from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import Unauthenticated
from .tokens import ExpiredToken, InvalidToken, TokenService

logger = logging.getLogger("userapi.security")


class BearerAuth:
    """Resolve the account identity from a bearer token or reject the request."""

    def __init__(self, tokens: TokenService) -> None:
        self._tokens = tokens
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> str:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise Unauthenticated("Missing bearer token")

        provided = credentials.credentials.strip()
        if not provided:
            raise Unauthenticated("Missing bearer token")

        try:
            identity = self._tokens.verify(provided)
        except ExpiredToken:
            logger.info("Rejected expired token for %s %s", request.method, request.url.path)
            raise Unauthenticated("Invalid or expired token") from None
        except InvalidToken as exc:
            logger.info("Rejected invalid token for %s %s: %s", request.method, request.url.path, exc)
            raise Unauthenticated("Invalid or expired token") from None

        request.state.identity = identity
        return identity


__all__ = ["BearerAuth"]
