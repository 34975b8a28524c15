#!/usr/bin/env python3
"""
SessionGate -- operator command line.

Usage:
  python main.py create-user --email admin@example.com --role ADMIN
  python main.py create-user --email ops@example.com --role SUPER_ADMIN --name "Ops"
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080 --reload

There is no self-registration endpoint; accounts are created here. The
password is always read interactively so it never lands in shell history.

Environment variables:
  SECRET_KEY     Required unless DEBUG=true. At least 32 characters.
  DATABASE_URL   SQLAlchemy URL of the credential store.
"""

import argparse
import getpass
import logging
import sys

from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import get_settings

logger = logging.getLogger("sessiongate.cli")

_MIN_PASSWORD_LEN = 8


def _prompt_password() -> str | None:
    """Ask for the password twice. Returns None if the entries differ or are too short."""
    password = getpass.getpass("Password: ")
    if len(password) < _MIN_PASSWORD_LEN:
        print(f"  [!] Password must be at least {_MIN_PASSWORD_LEN} characters.")
        return None
    if getpass.getpass("Confirm password: ") != password:
        print("  [!] Passwords do not match.")
        return None
    return password


def create_user(store: UserStore, email: str, role: Role, name: str | None, password: str) -> int | None:
    """Insert a user with a hashed password. Returns the new id, or None if the email is taken."""
    user = User(email=email, role=role, name=name, hashed_password=hash_password(password))
    try:
        user_id = store.create_user(user)
    except IntegrityError:
        print(f"  [!] A user with email '{email}' already exists.")
        return None
    logger.info("Created user %d with role %s", user_id, role.value)
    return user_id


def _cmd_create_user(args: argparse.Namespace) -> int:
    password = _prompt_password()
    if password is None:
        return 1
    store = UserStore(get_settings().database_url)
    try:
        user_id = create_user(store, args.email, Role(args.role), args.name, password)
    finally:
        store.close()
    if user_id is None:
        return 1
    print(f"  Created user {args.email} (id={user_id}, role={args.role})")
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="sessiongate",
        description="SessionGate operator commands.",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_create = sub.add_parser("create-user", help="Create a login account.")
    p_create.add_argument("--email", required=True, help="Login email (stored lower-cased).")
    p_create.add_argument(
        "--role",
        choices=[r.value for r in Role],
        default=Role.USER.value,
        help="Account role (default: USER).",
    )
    p_create.add_argument("--name", default=None, help="Optional display name.")
    p_create.set_defaults(func=_cmd_create_user)

    p_serve = sub.add_parser("serve", help="Run the API with uvicorn.")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.add_argument("--reload", action="store_true", help="Auto-reload on code changes (dev only).")
    p_serve.set_defaults(func=_cmd_serve)

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)-5s %(name)s %(message)s")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
