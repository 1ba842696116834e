"""
auth/invitations.py -- One-time invitation token lifecycle.

States:
  Active   -- created, unconsumed, now < expires_at
  Consumed -- terminal; set exactly once, in the same transaction as the
              account creation it authorizes
  Expired  -- terminal; reached only by time passing, removed by the sweep

Every function takes an optional `now` so expiry can be evaluated at an
arbitrary instant. All persistence goes through the injected UserStore.

Layer rule: no imports from api/ or content/.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from auth.errors import InvalidOrExpiredInvitation
from auth.models import Invitation, Principal, User
from auth.tokens import hash_password
from auth.visibility import ROLES
from core.config import get_settings

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("wikimd.invitations")


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def generate_invitation_token() -> str:
    """256 bits from the OS CSPRNG, URL-safe so it can sit in an invite link."""
    return secrets.token_urlsafe(32)


def create_invitation(
    store: UserStore,
    role: str,
    ttl: timedelta | None = None,
    now: datetime | None = None,
) -> Invitation:
    """Create and persist an Active invitation for the given role.

    ttl defaults to Settings.invitation_ttl_days. A zero ttl produces an
    invitation that is already expired.
    """
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role!r}")
    if ttl is None:
        ttl = timedelta(days=get_settings().invitation_ttl_days)
    invitation = Invitation(
        token=generate_invitation_token(),
        role=role,
        expires_at=_now(now) + ttl,
    )
    invitation.id = store.create_invitation(invitation)
    logger.info("Invitation created for role=%s (expires %s)", role, invitation.expires_at.isoformat())
    return invitation


def is_active(invitation: Invitation, now: datetime | None = None) -> bool:
    return not invitation.consumed and _now(now) < invitation.expires_at


def validate_invitation(store: UserStore, token: str, now: datetime | None = None) -> Invitation | None:
    """Return the invitation only if it exists, is unconsumed, and unexpired.

    The store lookup filters on consumed = 0 only; expiry is re-checked here
    so an unconsumed but expired row never validates.
    """
    if not token:
        return None
    invitation = store.get_invitation(token, active_only=True)
    if invitation is None or not is_active(invitation, now):
        return None
    return invitation


def redeem_invitation(
    store: UserStore,
    token: str,
    username: str,
    password: str,
    display_name: str | None = None,
    now: datetime | None = None,
) -> Principal:
    """Create an account from an invitation and consume it, atomically.

    Raises InvalidOrExpiredInvitation (missing, consumed, expired) or
    DuplicateUsername. On DuplicateUsername the invitation remains Active.
    """
    if validate_invitation(store, token, now) is None:
        raise InvalidOrExpiredInvitation()
    user = User(
        username=username,
        role="reader",  # replaced by the invitation's role inside the transaction
        hashed_password=hash_password(password),
        display_name=display_name or username,
    )
    created = store.redeem_invitation(token, user, now=_now(now))
    logger.info("Invitation redeemed: user id=%s role=%s", created.id, created.role)
    return Principal(user_id=created.id, role=created.role)


def sweep_invitations(store: UserStore, now: datetime | None = None) -> int:
    """Delete expired, unconsumed invitations. Returns the number removed."""
    removed = store.delete_expired_invitations(_now(now))
    if removed:
        logger.info("Invitation sweep removed %d expired invitation(s)", removed)
    return removed
