"""
auth/visibility.py -- The content-visibility decision function.

can_access() is a single total function with no hidden state. Every route
that serves an article or folder consults it instead of re-deriving rules.
Password possession is resolved by the caller (see auth/tokens.py) into the
provided_password argument before the call.

Roles are stored as flat strings. The reader < editor < admin ordering is
expressed here as explicit sets, not as numeric ranks.

Layer rule: no imports from api/ or content/.
"""

from __future__ import annotations

ROLES: tuple[str, ...] = ("reader", "editor", "admin")
VISIBILITY_TIERS: tuple[str, ...] = ("public", "logged", "password", "editor", "admin")

_EDITOR_ROLES = frozenset({"editor", "admin"})
_ROLES_AT_LEAST: dict[str, frozenset[str]] = {
    "reader": frozenset(ROLES),
    "editor": _EDITOR_ROLES,
    "admin": frozenset({"admin"}),
}


def is_editor(role: str | None) -> bool:
    """True for editors and admins -- the roles allowed to mutate content."""
    return role in _EDITOR_ROLES


def is_admin(role: str | None) -> bool:
    return role == "admin"


def role_at_least(role: str | None, minimum: str) -> bool:
    """Return True if role satisfies minimum under reader < editor < admin.

    Unknown minimums deny. An absent role (anonymous) never satisfies any
    minimum.
    """
    return role in _ROLES_AT_LEAST.get(minimum, frozenset())


def can_access(
    tier: str,
    role: str | None,
    provided_password: str | None,
    stored_password: str | None,
) -> bool:
    """Decide whether a principal may view a resource of the given tier.

    tier:
      public   -- always
      logged   -- any authenticated principal
      password -- provided_password == stored_password, plaintext exact match.
                  None == None authorizes; stores guarantee password-tier
                  resources always carry a password.
      editor   -- editor or admin
      admin    -- admin only
    Anything else denies.
    """
    if tier == "public":
        return True
    if tier == "logged":
        return bool(role)
    if tier == "password":
        return provided_password == stored_password
    if tier == "editor":
        return is_editor(role)
    if tier == "admin":
        return is_admin(role)
    return False
