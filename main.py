#!/usr/bin/env python3
"""
credvault -- Credential repository with OU/division access control.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8000 --reload
  python main.py seed
  python main.py seed --keep
  python main.py create-admin alice

Environment variables (see core/config.py for the full list):
  SECRET_KEY            JWT signing key. Required unless DEBUG=true.
  AUTH_DATABASE_URL     SQLAlchemy URL of the user store.
  VAULT_DATABASE_URL    SQLAlchemy URL of the OU/division/credential store.
  VAULT_ENCRYPTION_KEY  Fernet key for secrets at rest (derived from SECRET_KEY if unset).
"""

import argparse
import getpass
import sys

from sqlalchemy.exc import IntegrityError

from auth import accounts
from auth.store import UserStore
from core.errors import VaultError
from vault.seed import SAMPLE_USERS, seed_sample_data
from vault.store import VaultStore


def _cmd_seed(args: argparse.Namespace) -> int:
    users, vault = UserStore(), VaultStore()
    try:
        counts = seed_sample_data(users, vault, reset=not args.keep)
    except IntegrityError as e:
        print(f"  [!] Could not seed sample data: {e.orig}")
        return 1
    finally:
        vault.close()
        users.close()

    print("\ncredvault -- sample data")
    print("-" * 40)
    for name, count in counts.items():
        print(f"  {name:<12} {count}")
    print("\n  Sample logins:")
    for username, (password, role) in SAMPLE_USERS.items():
        print(f"    {username:<10} {password:<12} ({role.value})")
    print()
    return 0


def _cmd_create_admin(args: argparse.Namespace) -> int:
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Confirm password: "):
        print("  [!] Passwords do not match.")
        return 1

    users = UserStore()
    try:
        user = accounts.create_admin(users, args.username, password)
    except VaultError as e:
        print(f"  [!] {e.message}")
        return 1
    finally:
        users.close()

    print(f"  Admin '{user.username}' created ({user.id}).")
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="credvault",
        description="Credential repository with organizational-unit and division based access control.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py seed                  # wipe both stores, load sample data
  python main.py create-admin alice    # prompts for a password
  DEBUG=true python main.py serve --reload
        """,
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    seed = subparsers.add_parser("seed", help="Load sample OUs, divisions, users and credentials")
    seed.add_argument(
        "--keep",
        action="store_true",
        help="Keep existing data instead of clearing both stores first",
    )
    seed.set_defaults(func=_cmd_seed)

    create_admin = subparsers.add_parser("create-admin", help="Create an admin account")
    create_admin.add_argument("username", help="Login name, 3-30 characters")
    create_admin.set_defaults(func=_cmd_create_admin)

    serve = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development)")
    serve.set_defaults(func=_cmd_serve)

    args = parser.parse_args()
    if not getattr(args, "func", None):
        parser.print_help()
        return
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
