#!/usr/bin/env python3
"""
wikimd -- administration CLI.

Operates directly on the configured database (DATABASE_URL or
DATA_DIRECTORY/wiki.db); the API server does not need to be running.

Usage:
  python main.py seed-admins
  python main.py seed-admins --spec "alice:Secret1,bob:Secret2"
  python main.py invite --role editor
  python main.py invite --role reader --ttl-days 1
  python main.py create-user --username carol --role editor
  python main.py create-user --username dave --role reader --password hunter22
  python main.py sweep

Environment variables:
  SECRET_KEY    Required unless DEBUG=true.
  LIST_ADMIN    Default spec for seed-admins.
"""

import argparse
import sys
from datetime import datetime, timedelta, timezone
from typing import Optional

from auth.bootstrap import seed_admins
from auth.errors import DuplicateUsername
from auth.invitations import create_invitation, sweep_invitations
from auth.models import User
from auth.store import UserStore
from auth.tokens import generate_secure_password, hash_password
from auth.visibility import ROLES
from core.config import get_settings


def _open_store(db_url: Optional[str]) -> UserStore:
    return UserStore(db_url or get_settings().resolved_database_url())


def _cmd_seed_admins(store: UserStore, args: argparse.Namespace) -> int:
    spec = args.spec if args.spec is not None else get_settings().list_admin
    created = seed_admins(store, spec)
    if created:
        print(f"  Created {len(created)} admin account(s): {', '.join(created)}")
    else:
        print("  No admin accounts created.")
    return 0


def _cmd_invite(store: UserStore, args: argparse.Namespace) -> int:
    ttl = timedelta(days=args.ttl_days) if args.ttl_days is not None else None
    invitation = create_invitation(store, args.role, ttl=ttl)
    base = get_settings().public_base_url.rstrip("/")
    print(f"  Invitation for role '{invitation.role}' (expires {invitation.expires_at.isoformat()})")
    print(f"  {base}/invite/{invitation.token}" if base else f"  Token: {invitation.token}")
    return 0


def _cmd_create_user(store: UserStore, args: argparse.Namespace) -> int:
    password = args.password or generate_secure_password()
    if len(password.encode("utf-8")) > 72:
        print("  [!] Password must be at most 72 bytes.", file=sys.stderr)
        return 1
    try:
        user_id = store.create_user(
            User(
                username=args.username,
                role=args.role,
                hashed_password=hash_password(password),
                display_name=args.username,
            )
        )
    except DuplicateUsername:
        print(f"  [!] Username '{args.username}' is already taken.", file=sys.stderr)
        return 1
    print(f"  Created user '{args.username}' (id={user_id}, role={args.role})")
    if not args.password:
        print(f"  Generated password: {password}")
    return 0


def _cmd_sweep(store: UserStore, args: argparse.Namespace) -> int:
    invitations = sweep_invitations(store)
    revocations = store.purge_revoked_sessions(datetime.now(timezone.utc))
    print(f"  Removed {invitations} expired invitation(s) and {revocations} stale session revocation(s).")
    return 0


_COMMANDS = {
    "seed-admins": _cmd_seed_admins,
    "invite": _cmd_invite,
    "create-user": _cmd_create_user,
    "sweep": _cmd_sweep,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wikimd",
        description="wikimd administration: accounts, invitations, maintenance.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py seed-admins --spec "alice:Secret1"
  python main.py invite --role editor --ttl-days 3
  python main.py create-user --username carol --role reader
  python main.py sweep
        """,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy URL to operate on (default: from settings)",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    seed = sub.add_parser("seed-admins", help="Create missing admin accounts from a user:pass list")
    seed.add_argument(
        "--spec",
        default=None,
        metavar="SPEC",
        help="Comma-separated user:password pairs (default: LIST_ADMIN)",
    )

    invite = sub.add_parser("invite", help="Issue an invitation link")
    invite.add_argument("--role", choices=ROLES, default="reader", help="Role granted on redemption")
    invite.add_argument(
        "--ttl-days",
        type=int,
        default=None,
        metavar="N",
        help="Days until the invitation expires (default: INVITATION_TTL_DAYS)",
    )

    create = sub.add_parser("create-user", help="Create an account directly")
    create.add_argument("--username", required=True)
    create.add_argument("--role", choices=ROLES, default="reader")
    create.add_argument(
        "--password",
        default=None,
        help="Account password (default: generate one and print it once)",
    )

    sub.add_parser("sweep", help="Delete expired invitations and stale session revocations")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    store = _open_store(args.database_url)
    try:
        return _COMMANDS[args.command](store, args)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
