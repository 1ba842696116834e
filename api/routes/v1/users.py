"""
api/routes/v1/users.py -- User and invitation management (admin only).

Routes:
  GET    /api/v1/users          -- list all users
  POST   /api/v1/users          -- create user (explicit password, generated
                                   password, or invitation link)
  PUT    /api/v1/users/{id}     -- reset password and/or change role
  DELETE /api/v1/users/{id}     -- delete user (never yourself)
  POST   /api/v1/invitations    -- issue an invitation for a role

A role change takes effect on the target's next request: auth/dependencies.py
re-reads the role from the store instead of trusting the session token.
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import (
    InvitationCreate,
    InvitationCreatedResponse,
    MessageResponse,
    UserCreate,
    UserCreatedResponse,
    UserResponse,
    UserUpdate,
)
from auth.dependencies import require_admin
from auth.invitations import create_invitation
from auth.models import Invitation, User
from auth.store import UserStore
from auth.tokens import generate_secure_password, hash_password
from core.config import get_settings

router = APIRouter()


def _invite_link(request: Request, invitation: Invitation) -> str:
    base = get_settings().public_base_url or str(request.base_url)
    return f"{base.rstrip('/')}/invite/{invitation.token}"


def _user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        display_name=user.display_name,
        role=user.role,
        created_at=user.created_at or "",
    )


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, current_user: User = Depends(require_admin)) -> list[UserResponse]:
    user_store: UserStore = request.app.state.user_store
    return [_user_to_response(u) for u in user_store.list_users()]


@router.post("/users", response_model=UserCreatedResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    current_user: User = Depends(require_admin),
) -> UserCreatedResponse:
    """Create an account, or hand out an invitation when no password is given.

    A generated password is returned exactly once and never stored in
    plaintext. DuplicateUsername propagates to the 409 handler.
    """
    user_store: UserStore = request.app.state.user_store

    if not body.generate_password and not body.password:
        invitation = create_invitation(user_store, body.role.value)
        return UserCreatedResponse(invite_link=_invite_link(request, invitation))

    password = generate_secure_password() if body.generate_password else body.password
    user_id = user_store.create_user(
        User(
            username=body.username,
            role=body.role.value,
            hashed_password=hash_password(password),
            display_name=body.display_name or body.username,
        )
    )
    return UserCreatedResponse(
        user_id=user_id,
        password=password if body.generate_password else None,
    )


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserUpdate,
    current_user: User = Depends(require_admin),
) -> UserResponse:
    """Reset a password and/or change a role.

    Demoting the last admin is refused -- there would be no way back in
    short of LIST_ADMIN or direct database access.
    """
    user_store: UserStore = request.app.state.user_store
    target = user_store.get_by_id(user_id)
    if target is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )
    if body.password is None and body.role is None:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )

    if body.role is not None and target.role == "admin" and body.role.value != "admin":
        if user_store.count_admins() <= 1:
            raise HTTPException(
                status_code=400,
                detail={"code": "last_admin", "message": "Cannot demote the last admin account."},
            )

    if body.password:
        user_store.update_password(user_id, hash_password(body.password))
    if body.role is not None:
        user_store.update_role(user_id, body.role.value)
    return _user_to_response(user_store.get_by_id(user_id))


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    request: Request,
    user_id: int,
    current_user: User = Depends(require_admin),
) -> MessageResponse:
    if user_id == current_user.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_delete", "message": "You cannot delete your own account."},
        )
    user_store: UserStore = request.app.state.user_store
    if not user_store.delete_user(user_id):
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )
    return MessageResponse(message="User deleted.")


@router.post("/invitations", response_model=InvitationCreatedResponse, status_code=201)
def issue_invitation(
    request: Request,
    body: InvitationCreate,
    current_user: User = Depends(require_admin),
) -> InvitationCreatedResponse:
    ttl = timedelta(days=body.ttl_days) if body.ttl_days is not None else None
    invitation = create_invitation(request.app.state.user_store, body.role.value, ttl=ttl)
    return InvitationCreatedResponse(
        token=invitation.token,
        role=invitation.role,
        expires_at=invitation.expires_at.isoformat(),
        invite_link=_invite_link(request, invitation),
    )
