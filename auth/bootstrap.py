"""
auth/bootstrap.py -- Idempotent seeding of administrator accounts.

The spec string comes from LIST_ADMIN ("alice:Secret1,bob:Secret2"). Missing
accounts are created as admins; existing accounts are never touched, so this
is safe to run on every startup.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from auth.errors import DuplicateUsername
from auth.models import User
from auth.tokens import hash_password

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("wikimd.bootstrap")

# bcrypt>=5 refuses to hash anything longer.
_PASSWORD_MAX_BYTES = 72


def parse_admin_spec(spec: str | None) -> list[tuple[str, str]]:
    """Split "user:pass,user2:pass2" into (username, password) pairs.

    Splits on the first colon only, so passwords may contain ":". Entries
    without a colon, with an empty username or password, or with a password
    over 72 UTF-8 bytes, are skipped.
    """
    pairs: list[tuple[str, str]] = []
    for entry in (spec or "").split(","):
        if not entry.strip():
            continue
        username, sep, password = entry.partition(":")
        username, password = username.strip(), password.strip()
        if not sep or not username or not password:
            logger.warning("Skipping malformed admin entry %r", username or "<empty>")
            continue
        if len(password.encode("utf-8")) > _PASSWORD_MAX_BYTES:
            logger.warning("Skipping admin entry %r: password longer than %d bytes", username, _PASSWORD_MAX_BYTES)
            continue
        pairs.append((username, password))
    return pairs


def seed_admins(store: UserStore, spec: str | None) -> list[str]:
    """Create any admin account from spec that does not exist yet.

    Returns the usernames actually created.
    """
    created: list[str] = []
    for username, password in parse_admin_spec(spec):
        if store.get_by_username(username) is not None:
            continue
        try:
            store.create_user(
                User(
                    username=username,
                    role="admin",
                    hashed_password=hash_password(password),
                    display_name=username,
                )
            )
        except DuplicateUsername:
            # Another worker seeded it between the lookup and the insert.
            continue
        logger.info("Admin user created: %s", username)
        created.append(username)
    return created
