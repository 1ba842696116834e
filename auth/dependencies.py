"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two transports are checked in priority order:
  1. "session" cookie -- set by POST /api/v1/auth/login.
  2. Authorization: Bearer <token> header -- API clients.

Both carry the same signed session token. After decoding, the request is
resolved against the store:
  - a revoked session id (logged out) is anonymous;
  - the user row is re-fetched by id and its CURRENT role is used, so an
    admin role change applies on the next request instead of at re-login;
  - a deleted user is anonymous.

try_get_current_user() is the soft variant (returns None, never raises).
get_current_user() raises Unauthorized; require_editor() / require_admin()
additionally raise Forbidden. api/main.py renders both as JSON errors.

Layer rule: no imports from api/ or content/.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import Forbidden, Unauthorized
from auth.models import User
from auth.tokens import SESSION_COOKIE, decode_session
from auth.visibility import is_admin, is_editor


def get_raw_session_token(request: Request) -> str | None:
    token: str | None = request.cookies.get(SESSION_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def try_get_current_user(request: Request) -> User | None:
    """Resolve the request's principal to a live User, or None for anonymous.

    Malformed, forged, expired, and revoked tokens all degrade to None so a
    corrupted cookie never blocks a route that accepts anonymous access.
    """
    principal = decode_session(get_raw_session_token(request))
    if principal is None:
        return None
    user_store = request.app.state.user_store
    if principal.session_id and user_store.is_session_revoked(principal.session_id):
        return None
    return user_store.get_by_id(principal.user_id)


def get_current_user(request: Request) -> User:
    """Require authentication. Raises Unauthorized (401) for anonymous requests.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise Unauthorized()
    return user


def require_editor(request: Request) -> User:
    """Require editor or admin. 401 if anonymous, 403 if a reader."""
    user = get_current_user(request)
    if not is_editor(user.role):
        raise Forbidden("Editor access required.")
    return user


def require_admin(request: Request) -> User:
    """Require admin role. 401 if anonymous, 403 otherwise."""
    user = get_current_user(request)
    if not is_admin(user.role):
        raise Forbidden("Admin access required.")
    return user
