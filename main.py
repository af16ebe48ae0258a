#!/usr/bin/env python3
"""
Site user portal -- command-line user administration.

Creates accounts without going through the web form, e.g. to seed the first
admin before anyone can log in to /admin/list.

Usage:
  python main.py create-user 管理者ユーザ --email admin@example.com --admin
  python main.py create-user Harada --email harada@example.com --gender 0 --password secret
  python main.py list-users
  python main.py list-users --db-url sqlite:///other.db

Environment variables:
  DATABASE_URL  Store to operate on (default: siteuser.db beside the code).
                --db-url overrides it.
  SECRET_KEY    Required unless DEBUG=true (shared with the web app config).
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from auth.models import GENDER_LABELS
from auth.service import register_user
from auth.store import SiteUserStore
from core.config import get_settings
from web.forms import RegistrationForm, field_errors

logger = logging.getLogger("siteuser.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="main.py",
        description="Manage site user accounts.",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="SQLAlchemy database URL (default: DATABASE_URL setting)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Register a new user")
    create.add_argument("username")
    create.add_argument("--email", required=True)
    create.add_argument(
        "--gender",
        type=int,
        default=0,
        choices=sorted(GENDER_LABELS),
        help="0=male, 1=female, 2=other (default: 0)",
    )
    create.add_argument("--admin", action="store_true", help="Grant ADMIN authority")
    create.add_argument("--password", help="Password (prompted when omitted)")

    sub.add_parser("list-users", help="Print every registered user")
    return parser


def _create_user(store: SiteUserStore, args: argparse.Namespace) -> int:
    password = args.password
    if password is None:
        password = getpass.getpass("Password: ")
    try:
        form = RegistrationForm(
            username=args.username,
            password=password,
            email=args.email,
            gender=args.gender,
            admin=args.admin,
        )
    except ValidationError as exc:
        for field, messages in field_errors(exc).items():
            for msg in messages:
                print(f"Error: {field}: {msg}", file=sys.stderr)
        return 1

    try:
        user = register_user(store, form.to_site_user())
    except IntegrityError:
        print(f"Error: username {form.username!r} is already registered.", file=sys.stderr)
        return 1
    print(f"Created user {user.username!r} (id={user.id}, authority={user.authority.value})")
    return 0


def _list_users(store: SiteUserStore) -> int:
    users = store.find_all()
    if not users:
        print("No users registered.")
        return 0
    for user in users:
        print(f"{user.id:>4}  {user.username:<20}  {user.authority.value:<5}  {user.email}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    db_url = args.db_url or get_settings().database_url

    store = SiteUserStore(db_url)
    try:
        if args.command == "create-user":
            return _create_user(store, args)
        return _list_users(store)
    finally:
        store.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s %(message)s")
    sys.exit(main())
