"""
api/routes/v1/auth.py -- Login, logout, profile, password possession, invitations.

Routes:
  POST /api/v1/auth/login              -- password login; sets session cookie
  POST /api/v1/auth/logout             -- revokes the presented session, clears cookie
  GET  /api/v1/auth/me                 -- current user info (requires auth)
  POST /api/v1/auth/profile            -- update own profile / password (requires auth)
  POST /api/v1/auth/verify-password    -- password-tier challenge; sets pwd_{type}_{slug} cookie
  GET  /api/v1/invitations/{token}     -- inspect an invitation (public)
  POST /api/v1/invitations/{token}     -- redeem an invitation into an account (public)

Security:
  authenticate() provides timing equalization -- use it, never inline
  get_by_username() + verify_password().
  Cache-Control: no-store on login responses.
  Unknown username and wrong password return the same bad_credentials error.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.models import (
    InvitationInfo,
    InvitationRedeem,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    ProfileUpdate,
    VerifyPasswordRequest,
)
from auth.dependencies import get_current_user, get_raw_session_token
from auth.errors import AuthError, InvalidOrExpiredInvitation
from auth.invitations import redeem_invitation, validate_invitation
from auth.models import User
from auth.store import UserStore
from auth.tokens import (
    authenticate,
    clear_session_cookie,
    decode_session,
    hash_password,
    issue_possession_token,
    set_possession_cookie,
    set_session_cookie,
)
from auth.visibility import can_access
from content.store import ContentStore

logger = logging.getLogger("wikimd.auth")

# Auth policy:
# - POST /auth/login, /auth/logout, /auth/verify-password: public
# - GET/POST /invitations/{token}: public -- possession of the token is the credential
# - GET /auth/me, POST /auth/profile: requires auth (get_current_user)
router = APIRouter()


def _error_json(exc: AuthError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": exc.code, "message": exc.message}},
    )


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; set the session cookie.

    Sync handler on purpose: bcrypt is CPU-bound and FastAPI runs sync
    handlers in its thread pool.
    """
    user_store: UserStore = request.app.state.user_store
    try:
        result = authenticate(user_store, body.username, body.password)
    except AuthError as exc:
        resp = _error_json(exc)
        resp.headers["Cache-Control"] = "no-store"
        return resp

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=result.session.value,
            user_id=result.user.id,
            username=result.user.username,
            role=result.user.role,
            expires_at=result.session.expires_at.isoformat(),
        ).model_dump(),
    )
    set_session_cookie(resp, result.session)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Clear the session cookie and revoke the presented token server-side.

    A replayed copy of the token is rejected by auth/dependencies.py until
    it would have expired on its own.
    """
    principal = decode_session(get_raw_session_token(request))
    if principal is not None and principal.session_id:
        request.app.state.user_store.revoke_session(principal.session_id, principal.expires_at)
        logger.info("Session revoked for user id=%s", principal.user_id)
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    clear_session_cookie(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(
        user_id=current_user.id,
        username=current_user.username,
        role=current_user.role,
        display_name=current_user.display_name,
        profile_image=current_user.profile_image,
        description=current_user.description,
    )


@router.post("/auth/profile", response_model=MessageResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    """Update the caller's own profile. Only fields present in the body change.

    A null or empty display_name resets it to the username.
    """
    user_store: UserStore = request.app.state.user_store
    updates = body.model_dump(include={"display_name", "profile_image", "description"}, exclude_unset=True)
    if "display_name" in updates and not updates["display_name"]:
        updates["display_name"] = current_user.username
    if updates:
        user_store.update_user(current_user.id, **updates)
    if body.new_password:
        user_store.update_password(current_user.id, hash_password(body.new_password))
    return MessageResponse(message="Profile updated.")


# ---------------------------------------------------------------------------
# Password-tier challenge
# ---------------------------------------------------------------------------


@router.post("/auth/verify-password", response_model=MessageResponse)
def verify_resource_password(request: Request, body: VerifyPasswordRequest) -> JSONResponse:
    """Check a resource password and hand out a 24h possession cookie.

    The comparison goes through can_access() so the password tier has one
    definition. Resources that are not password-tier never issue a cookie.
    """
    content: ContentStore = request.app.state.content
    resource_type = body.type.value
    if resource_type == "article":
        resource = content.get_article(body.slug)
    else:
        resource = content.get_folder(body.slug)
    if resource is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": f"{resource_type.capitalize()} not found."},
        )

    if resource.visibility != "password" or not can_access("password", None, body.password, resource.password):
        return JSONResponse(
            status_code=401,
            content={"error": {"code": "invalid_password", "message": "Incorrect password."}},
        )

    token, expires_at = issue_possession_token(resource_type, resource.slug, resource.password)
    resp = JSONResponse(content=MessageResponse(message="Password accepted.").model_dump())
    set_possession_cookie(resp, resource_type, resource.slug, token, expires_at)
    return resp


# ---------------------------------------------------------------------------
# Invitation redemption
# ---------------------------------------------------------------------------


@router.get("/invitations/{token}", response_model=InvitationInfo)
def get_invitation(request: Request, token: str) -> InvitationInfo:
    """Show what an invitation grants. Missing, consumed, and expired look the same."""
    invitation = validate_invitation(request.app.state.user_store, token)
    if invitation is None:
        raise InvalidOrExpiredInvitation()
    return InvitationInfo(role=invitation.role, expires_at=invitation.expires_at.isoformat())


@router.post("/invitations/{token}", response_model=MeResponse, status_code=201)
def redeem(request: Request, token: str, body: InvitationRedeem) -> MeResponse:
    """Create an account from an invitation.

    Account creation and consumption happen in one transaction: a taken
    username (409) leaves the invitation usable for another attempt.
    """
    user_store: UserStore = request.app.state.user_store
    principal = redeem_invitation(
        user_store,
        token,
        username=body.username,
        password=body.password,
        display_name=body.display_name,
    )
    return MeResponse(
        user_id=principal.user_id,
        username=body.username,
        role=principal.role,
        display_name=body.display_name or body.username,
    )
