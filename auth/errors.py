"""
auth/errors.py -- Authorization failure taxonomy.

Every failure here is recoverable at the request boundary: api/main.py maps
AuthError subclasses onto the shared ErrorResponse envelope using code and
status_code. Nothing in this module should ever become a 500.

Storage-level exceptions (IntegrityError) are translated into this taxonomy
by the stores -- raw database errors never reach the client.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all access-control failures."""

    code = "auth_error"
    status_code = 400
    message = "Authorization failed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidCredentials(AuthError):
    """Unknown username or wrong password -- deliberately indistinguishable."""

    code = "bad_credentials"
    status_code = 401
    message = "Invalid username or password."


class InvalidOrExpiredInvitation(AuthError):
    """Invitation token missing, already consumed, or past expiry."""

    code = "invalid_invitation"
    status_code = 404
    message = "Invalid or expired invitation."


class Unauthorized(AuthError):
    code = "unauthorized"
    status_code = 401
    message = "Authentication required."


class Forbidden(AuthError):
    code = "forbidden"
    status_code = 403
    message = "Insufficient role for this resource."


class PasswordRequired(AuthError):
    """Password-tier resource requested without a valid possession token."""

    code = "password_required"
    status_code = 401
    message = "This resource is password protected."


class DuplicateUsername(AuthError):
    code = "conflict"
    status_code = 409
    message = "A user with that username already exists."
