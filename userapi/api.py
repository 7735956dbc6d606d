"""FastAPI application exposing account and user management endpoints."""
from __future__ import annotations

import json
import logging
from datetime import datetime
from functools import partial
from typing import Any, Callable, Dict, List, Optional, TypeVar

import anyio
from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, load_settings
from .credentials import CredentialStore
from .database import Database
from .errors import RateLimited, ServiceError, Unexpected, ValidationError
from .models import User
from .ratelimit import RateLimiter
from .repository import UserRepository
from .security import BearerAuth
from .service import AccountService, IssuedToken, UserPage, UserService
from .tokens import TokenService

logger = logging.getLogger("userapi.api")

_T = TypeVar("_T")

_HTTP_ERROR_CODES = {
    status.HTTP_404_NOT_FOUND: "not_found",
    status.HTTP_405_METHOD_NOT_ALLOWED: "method_not_allowed",
}


class _CamelResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserResponse(_CamelResponse):
    id: int
    first_name: str
    last_name: str
    age: int
    created_at: datetime
    updated_at: datetime


class UserListResponse(_CamelResponse):
    items: List[UserResponse]
    limit: int
    offset: int
    count: int


class TokenResponse(_CamelResponse):
    token: str
    token_type: str = "Bearer"
    expires_in: int


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        age=user.age,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def page_to_response(page: UserPage) -> UserListResponse:
    items = [user_to_response(user) for user in page.items]
    return UserListResponse(items=items, limit=page.limit, offset=page.offset, count=len(items))


def token_to_response(issued: IssuedToken) -> TokenResponse:
    return TokenResponse(token=issued.token, expires_in=int(issued.expires_in.total_seconds()))


def error_response(exc: ServiceError) -> JSONResponse:
    headers: Optional[Dict[str, str]] = None
    if isinstance(exc, RateLimited) and "retryAfter" in exc.details:
        headers = {"Retry-After": str(exc.details["retryAfter"])}
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope(), headers=headers)


async def _read_json(request: Request) -> Any:
    body = await request.body()
    if not body:
        raise ValidationError("Request body is required", details={"body": "Expected a JSON object"})
    try:
        return json.loads(body)
    except ValueError:
        raise ValidationError("Request body is not valid JSON", details={"body": "Malformed JSON"}) from None


async def _run(func: Callable[..., _T], *args: Any) -> _T:
    # Database work is blocking; keep it off the event loop.
    return await anyio.to_thread.run_sync(partial(func, *args))


def create_app(
    *,
    settings: Settings | None = None,
    database: Database | None = None,
    initialize_database: bool = True,
) -> FastAPI:
    if settings is None:
        settings = load_settings()
    if database is None:
        database = Database(settings.database_path)
    if initialize_database:
        database.initialize()

    tokens = TokenService(settings.token_secret, ttl=settings.token_ttl)
    auth = BearerAuth(tokens)
    limiter = RateLimiter(window=settings.rate_limit_window, ceiling=settings.rate_limit_ceiling)
    accounts = AccountService(CredentialStore(database), tokens)
    users = UserService(UserRepository(database))

    app = FastAPI(
        title="User Directory API",
        description="Token-authenticated CRUD service for user records",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.database = database
    app.state.tokens = tokens

    async def rate_limit(request: Request) -> None:
        client = request.client.host if request.client else "unknown"
        limiter.hit(client)

    async def require_identity(request: Request) -> str:
        return await auth(request)

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    auth_router = APIRouter(prefix="/api/auth", dependencies=[Depends(rate_limit)])

    @auth_router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
    async def register(request: Request) -> TokenResponse:
        payload = await _read_json(request)
        issued = await _run(accounts.register, payload)
        return token_to_response(issued)

    @auth_router.post("/login", response_model=TokenResponse)
    async def login(request: Request) -> TokenResponse:
        payload = await _read_json(request)
        issued = await _run(accounts.login, payload)
        return token_to_response(issued)

    # Every request to this router passes rate limiting, then authentication,
    # before the handler parses, validates, executes and formats.
    users_router = APIRouter(prefix="/api/users", dependencies=[Depends(rate_limit), Depends(require_identity)])

    @users_router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
    async def create_user(request: Request) -> UserResponse:
        payload = await _read_json(request)
        user = await _run(users.create_user, payload)
        return user_to_response(user)

    @users_router.get("", response_model=UserListResponse)
    async def list_users(
        first_name: Optional[str] = Query(default=None, alias="firstName"),
        last_name: Optional[str] = Query(default=None, alias="lastName"),
        min_age: Optional[str] = Query(default=None, alias="minAge"),
        max_age: Optional[str] = Query(default=None, alias="maxAge"),
        limit: Optional[str] = Query(default=None),
        offset: Optional[str] = Query(default=None),
    ) -> UserListResponse:
        query = {
            "firstName": first_name,
            "lastName": last_name,
            "minAge": min_age,
            "maxAge": max_age,
            "limit": limit,
            "offset": offset,
        }
        page = await _run(users.list_users, query)
        return page_to_response(page)

    @users_router.get("/{user_id}", response_model=UserResponse)
    async def read_user(user_id: str) -> UserResponse:
        user = await _run(users.get_user, user_id)
        return user_to_response(user)

    @users_router.put("/{user_id}", response_model=UserResponse)
    async def replace_user(user_id: str, request: Request) -> UserResponse:
        payload = await _read_json(request)
        user = await _run(users.replace_user, user_id, payload)
        return user_to_response(user)

    @users_router.patch("/{user_id}", response_model=UserResponse)
    async def patch_user(user_id: str, request: Request) -> UserResponse:
        payload = await _read_json(request)
        user = await _run(users.patch_user, user_id, payload)
        return user_to_response(user)

    @users_router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
    async def delete_user(user_id: str) -> Response:
        await _run(users.delete_user, user_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    app.include_router(auth_router)
    app.include_router(users_router)

    @app.exception_handler(ServiceError)
    async def handle_service_error(_: Request, exc: ServiceError) -> JSONResponse:
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
        details: Dict[str, str] = {}
        for error in exc.errors():
            location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
            details.setdefault(".".join(location) or "body", str(error.get("msg", "Invalid value")))
        return error_response(ValidationError(details=details))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        code = _HTTP_ERROR_CODES.get(exc.status_code, "http_error")
        payload = {"error": {"message": str(exc.detail), "code": code, "details": {}}}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
        return error_response(Unexpected())

    return app


__all__ = [
    "TokenResponse",
    "UserListResponse",
    "UserResponse",
    "create_app",
    "user_to_response",
]
