"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as content/store.py).
UserStore is the repository; _row_to_user / _row_to_invitation are the
mappers. Route and dependency code never touches SQL directly.

The store is an injected dependency (app.state.user_store), never a
module-level global, so tests substitute an in-memory database.

Security:
  All queries use bound parameters. No f-strings in SQL.

  The UNIQUE constraint on users.username surfaces as DuplicateUsername,
  not as a raw IntegrityError.

  redeem_invitation() marks the invitation consumed and inserts the account
  inside ONE transaction. A duplicate username rolls both writes back, so the
  invitation stays usable; a crash between the writes leaves neither.

Timestamps are stored as ISO 8601 UTC strings with fixed microsecond
precision, so lexical comparison in SQL matches chronological order.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateUsername, InvalidOrExpiredInvitation
from auth.models import Invitation, User

logger = logging.getLogger("wikimd.auth")

_DEFAULT_DB_URL = f"sqlite:///{Path('data') / 'wiki.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("display_name", String(255)),
    Column("role", String(20), nullable=False, server_default="reader"),
    Column("profile_image", Text),
    Column("description", Text),
    Column("created_at", String(32), nullable=False),
)

_invitations = Table(
    "invitations",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", String(128), nullable=False, unique=True),
    Column("role", String(20), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("consumed", Integer, nullable=False, server_default="0"),
)

# Logged-out sessions, kept until the token would have expired anyway.
_revoked_sessions = Table(
    "revoked_sessions",
    _metadata,
    Column("jti", String(64), primary_key=True),
    Column("expires_at", String(32), nullable=False),
)

_MUTABLE_USER_FIELDS = frozenset({"display_name", "profile_image", "description", "role", "hashed_password"})


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return _iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and Invitation entities plus session revocations.

    Usage:
        store = UserStore("sqlite:///data/wiki.db")
        store.create_user(User(username="alice", role="admin", hashed_password=hash_password("secret")))
        user = store.get_by_username("alice")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises DuplicateUsername if the username is already taken.
        """
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_users.insert().values(**_user_values(user)))
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateUsername() from exc
        return result.inserted_primary_key[0]

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by username. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: display_name, profile_image, description, role,
        hashed_password. Unknown keys raise ValueError rather than being
        silently ignored.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _MUTABLE_USER_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if not fields:
            return False
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def update_password(self, user_id: int, hashed_password: str) -> bool:
        return self.update_user(user_id, hashed_password=hashed_password)

    def update_role(self, user_id: int, role: str) -> bool:
        return self.update_user(user_id, role=role)

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        Callers enforce the "cannot delete yourself" rule; the store does not.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def count_admins(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users).where(_users.c.role == "admin")).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    def create_invitation(self, invitation: Invitation) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _invitations.insert().values(
                    token=invitation.token,
                    role=invitation.role,
                    created_at=_now_iso(),
                    expires_at=_iso(invitation.expires_at),
                    consumed=1 if invitation.consumed else 0,
                )
            )
            conn.commit()
        return result.inserted_primary_key[0]

    def get_invitation(self, token: str, active_only: bool = False) -> Invitation | None:
        """Look up an invitation by token.

        active_only filters on consumed = 0 only. Expiry is NOT checked here --
        auth/invitations.validate_invitation() re-checks it against its clock.
        """
        query = _invitations.select().where(_invitations.c.token == token)
        if active_only:
            query = query.where(_invitations.c.consumed == 0)
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_invitation(row) if row is not None else None

    def redeem_invitation(self, token: str, user: User, now: datetime) -> User:
        """Consume an invitation and create the account it authorizes, atomically.

        user.role is ignored; the account receives the invitation's role.

        Raises InvalidOrExpiredInvitation if the token is unknown, consumed,
        or not strictly before its expiry at `now`. Raises DuplicateUsername
        if the username is taken -- the consume is rolled back with it.
        """
        now_iso = _iso(now)
        try:
            with self.engine.begin() as conn:
                row = conn.execute(
                    _invitations.select().where(
                        (_invitations.c.token == token)
                        & (_invitations.c.consumed == 0)
                        & (_invitations.c.expires_at > now_iso)
                    )
                ).fetchone()
                if row is None:
                    raise InvalidOrExpiredInvitation()
                # Guarded update: a concurrent redeemer that got here first
                # leaves rowcount at 0.
                marked = conn.execute(
                    _invitations.update()
                    .where((_invitations.c.id == row.id) & (_invitations.c.consumed == 0))
                    .values(consumed=1)
                )
                if marked.rowcount != 1:
                    raise InvalidOrExpiredInvitation()
                user.role = row.role
                result = conn.execute(_users.insert().values(**_user_values(user)))
        except IntegrityError as exc:
            raise DuplicateUsername() from exc
        user.id = result.inserted_primary_key[0]
        return user

    def delete_expired_invitations(self, now: datetime) -> int:
        """Delete expired, unconsumed invitations. Returns rows removed.

        Consumed invitations are kept as history.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _invitations.delete().where((_invitations.c.expires_at < _iso(now)) & (_invitations.c.consumed == 0))
            )
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Session revocation
    # ------------------------------------------------------------------

    def revoke_session(self, jti: str, expires_at: datetime) -> None:
        """Record a logged-out session id. Revoking twice is a no-op."""
        with self.engine.begin() as conn:
            exists = conn.execute(select(_revoked_sessions.c.jti).where(_revoked_sessions.c.jti == jti)).fetchone()
            if exists is None:
                conn.execute(_revoked_sessions.insert().values(jti=jti, expires_at=_iso(expires_at)))

    def is_session_revoked(self, jti: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_revoked_sessions.c.jti).where(_revoked_sessions.c.jti == jti)).fetchone()
        return row is not None

    def purge_revoked_sessions(self, now: datetime) -> int:
        """Drop revocations whose token has expired on its own. Returns rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_revoked_sessions.delete().where(_revoked_sessions.c.expires_at < _iso(now)))
            conn.commit()
        return result.rowcount

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _user_values(user: User) -> dict:
    return {
        "username": user.username,
        "hashed_password": user.hashed_password,
        "display_name": user.display_name or user.username,
        "role": user.role,
        "profile_image": user.profile_image,
        "description": user.description,
        "created_at": _now_iso(),
    }


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        role=row.role,
        display_name=row.display_name,
        profile_image=row.profile_image,
        description=row.description,
        created_at=row.created_at,
    )


def _row_to_invitation(row) -> Invitation:
    return Invitation(
        id=row.id,
        token=row.token,
        role=row.role,
        expires_at=datetime.fromisoformat(row.expires_at),
        consumed=bool(row.consumed),
        created_at=row.created_at,
    )
