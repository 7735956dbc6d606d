"""Command-line interface for the user directory service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from getpass import getpass
from typing import Sequence

import httpx

from userapi.config import ConfigError, Settings, load_settings
from userapi.credentials import CredentialStore
from userapi.database import Database
from userapi.schemas import PASSWORD_MIN_LENGTH

logger = logging.getLogger("userapi.main")

_DEFAULT_SERVICE_URL = "http://localhost:8000"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User directory service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the database tables")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: from configuration)")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Listening port (default: from configuration, 8000)",
    )

    account_parser = subparsers.add_parser("create-account", help="Register an API account")
    account_parser.add_argument("identifier", help="Unique login identifier, e.g. an email address")

    list_parser = subparsers.add_parser(
        "list-users", help="Print the first page of users from a running service"
    )
    list_parser.add_argument(
        "--service-url",
        default=None,
        help=f"Base URL of the running service (default: {_DEFAULT_SERVICE_URL})",
    )
    list_parser.add_argument("--limit", type=int, default=50, help="Page size (max 100)")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "create-account", "list-users"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, settings: Settings, database: Database, host: str | None, port: int | None) -> None:
    from userapi.api import create_app
    import uvicorn

    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info("Starting user API on http://%s:%s", bind_host, bind_port)

    app = create_app(settings=settings, database=database, initialize_database=False)
    uvicorn.run(app, host=bind_host, port=bind_port, log_level=settings.log_level.lower())


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {PASSWORD_MIN_LENGTH} characters): ")
        if len(password) < PASSWORD_MIN_LENGTH:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_account(database: Database, identifier: str) -> int:
    password = _prompt_for_password()
    if password is None:
        print("Aborted creating account.", file=sys.stderr)
        return 1

    try:
        account = CredentialStore(database).register(identifier, password)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created account #{account.id}: {account.identifier}")
    return 0


def _list_users(service_url: str | None, *, limit: int) -> int:
    base_url = (service_url or os.getenv("USERAPI_SERVICE_URL") or _DEFAULT_SERVICE_URL).rstrip("/")

    identifier = os.getenv("USERAPI_CLI_IDENTIFIER")
    password = os.getenv("USERAPI_CLI_PASSWORD")
    if not identifier or not password:
        print(
            "Set USERAPI_CLI_IDENTIFIER and USERAPI_CLI_PASSWORD to the credentials of a "
            "registered account before running this command."
        )
        return 1

    try:
        login = httpx.post(
            f"{base_url}/api/auth/login",
            json={"identifier": identifier, "password": password},
            timeout=10.0,
        )
        if login.status_code == 401:
            print("Authentication failed. Verify the configured credentials.")
            return 1
        login.raise_for_status()
        token = login.json()["token"]

        response = httpx.get(
            f"{base_url}/api/users",
            params={"limit": limit},
            headers={"Authorization": f"Bearer {token}"},
            timeout=10.0,
        )
        response.raise_for_status()
    except httpx.HTTPError as exc:
        print(f"Failed to contact the user service: {exc}")
        return 1

    users = response.json().get("items", [])
    if not users:
        print("No users are currently stored.")
        return 0

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'First name':<20}  {'Last name':<20}  {'Age':>3}  Updated")
    print("-" * 80)
    for user in users:
        print(
            f"{user['id']:>4}  {user['firstName']:<20}  {user['lastName']:<20}  "
            f"{user['age']:>3}  {user['updatedAt']}"
        )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    args = _parse_args(argv)

    try:
        settings = load_settings()
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(level=settings.log_level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    if args.command == "list-users":
        return _list_users(args.service_url, limit=args.limit)

    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(settings=settings, database=database, host=args.host, port=args.port)
    elif args.command == "create-account":
        return _create_account(database, args.identifier)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
