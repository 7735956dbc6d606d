from __future__ import annotations

from datetime import timedelta

import jwt
import pytest

from userapi.tokens import ExpiredToken, InvalidToken, TokenService

SECRET = "token-tests-secret-key-with-enough-length"


def test_issued_token_verifies_to_identity(clock) -> None:
    service = TokenService(SECRET, clock=clock)

    token = service.issue("a@x.com")

    assert service.verify(token) == "a@x.com"


def test_token_expires_after_lifetime(clock) -> None:
    service = TokenService(SECRET, ttl=timedelta(minutes=10), clock=clock)
    token = service.issue("a@x.com")

    clock.advance(minutes=9)
    assert service.verify(token) == "a@x.com"

    clock.advance(minutes=1)
    with pytest.raises(ExpiredToken):
        service.verify(token)


def test_explicit_expiry_overrides_default(clock) -> None:
    service = TokenService(SECRET, ttl=timedelta(hours=1), clock=clock)
    token = service.issue("a@x.com", expires_in=timedelta(seconds=30))

    clock.advance(seconds=31)
    with pytest.raises(ExpiredToken):
        service.verify(token)


def test_token_signed_with_other_secret_is_invalid(clock) -> None:
    issuer = TokenService("a-completely-different-secret-value-here", clock=clock)
    verifier = TokenService(SECRET, clock=clock)

    with pytest.raises(InvalidToken):
        verifier.verify(issuer.issue("a@x.com"))


def test_tampered_token_is_invalid(clock) -> None:
    service = TokenService(SECRET, clock=clock)
    header, payload, signature = service.issue("a@x.com").split(".")
    forged_payload = jwt.utils.base64url_encode(b'{"sub":"admin","iss":"userapi","iat":0,"exp":9999999999}').decode()

    with pytest.raises(InvalidToken):
        service.verify(f"{header}.{forged_payload}.{signature}")


@pytest.mark.parametrize("garbage", ["", "not-a-token", "a.b.c"])
def test_garbled_token_is_invalid(clock, garbage: str) -> None:
    with pytest.raises(InvalidToken):
        TokenService(SECRET, clock=clock).verify(garbage)


def test_token_without_expiry_is_invalid(clock) -> None:
    token = jwt.encode({"sub": "a@x.com", "iss": "userapi", "iat": 0}, SECRET, algorithm="HS256")

    with pytest.raises(InvalidToken):
        TokenService(SECRET, clock=clock).verify(token)


def test_service_requires_secret() -> None:
    with pytest.raises(ValueError):
        TokenService("")
