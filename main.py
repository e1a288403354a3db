#!/usr/bin/env python3
"""
Business Manager -- administration CLI.

Provisions what the API cannot create on its own: the default roles and the
first users (there is no sign-up endpoint).

Usage:
  python main.py seed
  python main.py roles
  python main.py create-user --username ana --email ana@empresa.com.br
  python main.py create-user --username joao --cpf 123.456.789-09 --role f8eb44b1-cb47-4c47-a518-aa0d081c856f
  python main.py create-user --username bia --password 'Senha123!' --inactive

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the database (default: SQLite file in the project root)
  SECRET_KEY    Required unless DEBUG=true (read by the shared Settings)
"""

import argparse
import getpass
from typing import Optional

from sqlalchemy.exc import IntegrityError

from api.models import CPF_PATTERN, EMAIL_PATTERN, is_valid_password
from auth.models import User
from auth.store import DEFAULT_ROLES, AuthStore
from auth.tokens import hash_password
from core.config import get_settings


def _flag(value: Optional[bool]) -> str:
    return "x" if value is True else "-"


def cmd_seed(store: AuthStore, args: argparse.Namespace) -> int:
    inserted = store.seed_default_roles()
    print(f"  {inserted} default role(s) inserted.")
    return 0


def cmd_roles(store: AuthStore, args: argparse.Namespace) -> int:
    print(f"  {'#':>3}  {'uuid':36}  adm prj pes fin  name")
    for role in store.list_roles():
        flags = "   ".join(_flag(f) for f in (role.admin, role.project, role.personal, role.financial))
        print(f"  {role.id:>3}  {role.uuid:36}  {flags}    {role.name}")
    return 0


def cmd_create_user(store: AuthStore, args: argparse.Namespace) -> int:
    if args.email and not EMAIL_PATTERN.match(args.email):
        print(f"  [!] '{args.email}' is not a valid email address.")
        return 2
    if args.cpf and not CPF_PATTERN.match(args.cpf):
        print(f"  [!] '{args.cpf}' is not a valid CPF. Expected format: NNN.NNN.NNN-NN")
        return 2

    password = args.password or getpass.getpass("  Password: ")
    if not is_valid_password(password):
        print("  [!] Password needs 8 to 72 bytes with at least one digit and one symbol.")
        return 2

    if store.get_role(args.role) is None:
        print(f"  [!] No role with uuid {args.role}. Run 'python main.py roles' to list them.")
        return 2

    user = User(
        username=args.username,
        hashed_password=hash_password(password),
        auth_uuid=args.role,
        email=args.email,
        cpf=args.cpf,
        name=args.name,
        active=not args.inactive,
    )
    try:
        user_uuid = store.create_user(user)
    except IntegrityError:
        print("  [!] A user with that username, email or cpf already exists.")
        return 1
    print(f"  User {args.username} created ({user_uuid}).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bizmanager",
        description="Administration tasks for the Business Manager API.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("seed", help="Insert the default roles if they are missing").set_defaults(func=cmd_seed)
    sub.add_parser("roles", help="List roles and their capabilities").set_defaults(func=cmd_roles)

    create = sub.add_parser("create-user", help="Create a login")
    create.add_argument("--username", required=True)
    create.add_argument("--email")
    create.add_argument("--cpf", help="Format NNN.NNN.NNN-NN")
    create.add_argument("--name")
    create.add_argument("--password", help="Prompted for when omitted")
    create.add_argument(
        "--role",
        default=DEFAULT_ROLES[0].uuid,
        metavar="UUID",
        help="Role uuid (default: the Administrador role)",
    )
    create.add_argument("--inactive", action="store_true", help="Create the user deactivated")
    create.set_defaults(func=cmd_create_user)
    return parser


def main(argv: Optional[list[str]] = None, db_url: Optional[str] = None) -> int:
    args = build_parser().parse_args(argv)
    store = AuthStore(db_url or get_settings().database_url)
    try:
        return args.func(store, args)
    finally:
        store.close()


if __name__ == "__main__":
    raise SystemExit(main())
