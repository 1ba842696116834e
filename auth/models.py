"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the
token/invitation modules do the work.

Layer rule: no imports from api/ or content/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """A credential record: one local account.

    role is a flat enumerated value ("reader", "editor", "admin"). The
    reader < editor < admin ordering lives in auth/visibility.py, never in
    the stored value.

    display_name defaults to the username when the account is created without
    one (admin bootstrap, invitation redemption).
    """

    username: str
    role: str  # "reader", "editor", "admin"
    hashed_password: str
    id: int | None = None
    display_name: str | None = None
    profile_image: str | None = None
    description: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Principal:
    """The authenticated actor for one request.

    Reconstructed per request from a session token and discarded afterwards.
    Anonymous visitors have no Principal at all (None), never a Principal with
    an empty role.

    session_id is the token's jti claim -- logout writes it to the
    revocation table.
    """

    user_id: int
    role: str
    session_id: str | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True)
class SessionToken:
    """An issued session: the encoded cookie value plus its decoded view."""

    value: str
    principal: Principal
    issued_at: datetime
    expires_at: datetime


@dataclass
class Invitation:
    """A one-time, role-scoped registration authorization.

    Once consumed the invitation is permanently unusable; past expires_at it
    is unusable even if never consumed. Consumed rows are kept as history --
    the sweep only deletes expired, unconsumed rows.
    """

    token: str
    role: str
    expires_at: datetime
    consumed: bool = False
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Authenticated:
    """Successful login: the account, its principal, and the issued session."""

    user: User
    principal: Principal
    session: SessionToken
