"""
auth/tokens.py -- Password hashing, session tokens, and password possession.

Security design decisions:
  Passwords: bcrypt used directly, cost factor from Settings.bcrypt_rounds
       (default 10). verify_password() returns False on any malformed hash
       instead of raising. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether a username exists.

  Sessions: python-jose with HS256. Tokens are signed with SECRET_KEY and
       carry the user id (sub), role, a random session id (jti), iat and exp.
       A tampered, malformed, or expired token decodes to None -- the caller
       treats it exactly like "no token" (anonymous), never as an error.
       Decoding is stateless: revocation and role freshness are checked by
       auth/dependencies.py against the store.

  Password possession: after a visitor supplies the right password for a
       password-tier resource they receive a pwd_{type}_{slug} cookie. The
       value is a signed token bound to that resource and to a keyed
       fingerprint of the resource's current password, valid 24 hours.
       Changing the resource password invalidates outstanding cookies.

  SECRET_KEY: sourced from core.config.get_settings().

Layer rule: no imports from api/ or content/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.errors import InvalidCredentials
from auth.models import Authenticated, Principal, SessionToken
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("wikimd.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

SESSION_COOKIE = "session"

_SESSION_TYPE = "session"
_POSSESSION_TYPE = "pwd"


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Every call draws a fresh salt, so hashing the same password twice yields
    two different strings that both verify.
    """
    salt = bcrypt.gensalt(rounds=rounds or _settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw recomputes the full hash and compares in constant time.
    A missing or malformed hash is simply a non-match.
    """
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("wikimd_timing_dummy")


def generate_secure_password(length: int = 16) -> str:
    """Return a random password for admin-created accounts."""
    alphabet = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789!@#$%^&*"
    return "".join(secrets.choice(alphabet) for _ in range(length))


# ---------------------------------------------------------------------------
# Session codec
# ---------------------------------------------------------------------------


def issue_session(user_id: int, role: str, now: datetime | None = None) -> SessionToken:
    """Encode a signed session token expiring session_expire_days from now.

    Timestamps are truncated to whole seconds so the cookie Expires attribute,
    the exp claim, and SessionToken.expires_at all agree exactly.
    """
    issued_at = _now(now).replace(microsecond=0)
    expires_at = issued_at + timedelta(days=_settings.session_expire_days)
    session_id = secrets.token_urlsafe(16)
    payload = {
        "sub": str(user_id),
        "role": role,
        "jti": session_id,
        "typ": _SESSION_TYPE,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    value = jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)
    principal = Principal(user_id=user_id, role=role, session_id=session_id, expires_at=expires_at)
    return SessionToken(value=value, principal=principal, issued_at=issued_at, expires_at=expires_at)


def decode_session(raw: str | None, now: datetime | None = None) -> Principal | None:
    """Decode and verify a session token. Returns a Principal or None.

    None covers every failure -- absent input, bad signature, garbage,
    missing claims, and exp <= now. Expiry is checked here against the
    supplied clock instead of jose's wall clock so callers can evaluate a
    token at an arbitrary instant.
    """
    if not raw:
        return None
    try:
        payload = jwt.decode(
            raw,
            _settings.secret_key,
            algorithms=[_ALGORITHM],
            options={"verify_exp": False},
        )
        if payload.get("typ") != _SESSION_TYPE:
            return None
        user_id = int(payload["sub"])
        role = str(payload["role"])
        expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        session_id = payload.get("jti")
    except (JWTError, KeyError, TypeError, ValueError):
        return None
    if expires_at <= _now(now):
        return None
    return Principal(user_id=user_id, role=role, session_id=session_id, expires_at=expires_at)


# ---------------------------------------------------------------------------
# Authentication flow (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, username: str, password: str) -> User | None:
    """Look up and verify a username/password pair with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown username: bcrypt runs against _DUMMY_HASH
    - Wrong password: bcrypt runs against the real hash

    Returns the User on success, None on any failure.
    """
    user = store.get_by_username(username)
    if user is None:
        # Do NOT return before running bcrypt
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


def authenticate(store: UserStore, username: str, password: str, now: datetime | None = None) -> Authenticated:
    """Turn a username/password pair into an authenticated session.

    Raises InvalidCredentials for an unknown username and for a wrong
    password alike, so callers cannot distinguish the two.
    """
    user = authenticate_user(store, username, password)
    if user is None:
        raise InvalidCredentials()
    session = issue_session(user.id, user.role, now=now)
    logger.info("Login succeeded for user id=%s", user.id)
    return Authenticated(user=user, principal=session.principal, session=session)


# ---------------------------------------------------------------------------
# Password possession tokens
# ---------------------------------------------------------------------------


def possession_cookie_name(resource_type: str, slug: str) -> str:
    return f"pwd_{resource_type}_{slug}"


def _password_fingerprint(stored_password: str | None) -> str:
    """Keyed, truncated digest of the resource password.

    Binds a possession token to the password that was current when it was
    issued without putting the plaintext into the cookie.
    """
    return hmac.new(
        _settings.secret_key.encode(),
        (stored_password or "").encode(),
        hashlib.sha256,
    ).hexdigest()[:16]


def issue_possession_token(
    resource_type: str,
    slug: str,
    stored_password: str | None,
    now: datetime | None = None,
) -> tuple[str, datetime]:
    """Return (token, expires_at) proving the password for one resource was supplied."""
    issued_at = _now(now).replace(microsecond=0)
    expires_at = issued_at + timedelta(hours=_settings.password_access_hours)
    payload = {
        "typ": _POSSESSION_TYPE,
        "res": f"{resource_type}:{slug}",
        "pwh": _password_fingerprint(stored_password),
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM), expires_at


def has_password_access(
    raw: str | None,
    resource_type: str,
    slug: str,
    stored_password: str | None,
    now: datetime | None = None,
) -> bool:
    """Return True if raw is a live possession token for this resource and password."""
    if not raw:
        return False
    try:
        payload = jwt.decode(
            raw,
            _settings.secret_key,
            algorithms=[_ALGORITHM],
            options={"verify_exp": False},
        )
        expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
    except (JWTError, KeyError, TypeError, ValueError):
        return False
    if payload.get("typ") != _POSSESSION_TYPE:
        return False
    if payload.get("res") != f"{resource_type}:{slug}":
        return False
    if not hmac.compare_digest(str(payload.get("pwh", "")), _password_fingerprint(stored_password)):
        return False
    return expires_at > _now(now)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, session: SessionToken) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie.
    samesite="lax": not sent on cross-site POST.
    expires: the token's own expiry, so cookie and token die together.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=session.value,
        expires=session.expires_at,
        path="/",
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE, path="/", httponly=True, samesite="lax", secure=_settings.secure_cookies)


def set_possession_cookie(response, resource_type: str, slug: str, token: str, expires_at: datetime) -> None:
    response.set_cookie(
        possession_cookie_name(resource_type, slug),
        value=token,
        expires=expires_at,
        path="/",
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
    )
