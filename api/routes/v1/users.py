"""
api/routes/v1/users.py -- User management REST endpoints.

Routes:
  POST   /api/v1/users            -- create user            (manageUsers)
  GET    /api/v1/users            -- list/filter/paginate   (getUsers)
  GET    /api/v1/users/{user_id}  -- user detail            (getUsers, or self)
  PATCH  /api/v1/users/{user_id}  -- update name/email/pw   (manageUsers, or self)
  DELETE /api/v1/users/{user_id}  -- delete user            (manageUsers, or self)

Rights are checked by require_rights(). The {user_id} path parameter is the
subject of the request, so a USER with no rights can still read, edit, and
delete their own account. Role changes are admin-only and go through POST
(new account) -- UserPatch rejects a role field.
"""

from __future__ import annotations

import math

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from api.models import UserCreate, UserPage, UserPatch, UserResponse
from auth.dependencies import require_rights
from auth.errors import ConflictError, NotFoundError
from auth.models import AuthContext, TokenType, User
from auth.roles import RoleRights
from auth.store import UserStore
from auth.token_store import TokenStore
from auth.tokens import hash_password

router = APIRouter()


def _email_taken() -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"code": "email_taken", "message": "Email already taken"},
    )


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    ctx: AuthContext = Depends(require_rights("manageUsers")),
) -> UserResponse:
    """Create an account with any configured role."""
    user_store: UserStore = request.app.state.user_store
    role_rights: RoleRights = request.app.state.role_rights

    if body.role not in role_rights:
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_role", "message": f"Unknown role {body.role!r}."},
        )
    try:
        user = user_store.create_user(
            User(
                name=body.name,
                email=body.email,
                password=hash_password(body.password),
                role=body.role,
            )
        )
    except ConflictError as exc:
        raise _email_taken() from exc
    return UserResponse.from_user(user)


@router.get("/users", response_model=UserPage)
def list_users(
    request: Request,
    name: str | None = Query(default=None, max_length=255),
    role: str | None = Query(default=None, max_length=30),
    sort_by: str | None = Query(default=None, max_length=40, description='e.g. "name:asc" or "created_at:desc"'),
    limit: int = Query(default=10, ge=1, le=100),
    page: int = Query(default=1, ge=1),
    ctx: AuthContext = Depends(require_rights("getUsers")),
) -> UserPage:
    """Return one page of users, optionally filtered by exact name and role."""
    user_store: UserStore = request.app.state.user_store
    try:
        found, total = user_store.query_users(name=name, role=role, sort_by=sort_by, limit=limit, page=page)
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_sort", "message": str(exc)},
        ) from exc
    return UserPage(
        results=[UserResponse.from_user(u) for u in found],
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit),
        total_results=total,
    )


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: str,
    ctx: AuthContext = Depends(require_rights("getUsers")),
) -> UserResponse:
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return UserResponse.from_user(user)


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: str,
    body: UserPatch,
    ctx: AuthContext = Depends(require_rights("manageUsers")),
) -> UserResponse:
    """Update name, email, or password.

    Changing email clears the verified flag and burns outstanding
    verification tokens, which were mailed to the old address.
    Changing password burns outstanding reset tokens and revokes every other
    session of the user. The caller's own session survives when they edit
    themselves.
    """
    user_store: UserStore = request.app.state.user_store
    token_store: TokenStore = request.app.state.token_store

    target = user_store.get_by_id(user_id)
    if target is None:
        raise NotFoundError("User not found")

    updates: dict = body.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )
    if "email" in updates:
        if user_store.is_email_taken(updates["email"], exclude_user_id=user_id):
            raise _email_taken()
        if updates["email"].lower() != target.email:
            updates["is_email_verified"] = False
    if "password" in updates:
        updates["password"] = hash_password(updates["password"])

    try:
        updated = user_store.update_user(user_id, **updates)
    except ConflictError as exc:
        raise _email_taken() from exc
    if updated is None:
        raise NotFoundError("User not found")

    if updated.email != target.email:
        token_store.delete_tokens(user_id, TokenType.VERIFY_EMAIL.value)
    if "password" in updates:
        token_store.delete_tokens(user_id, TokenType.RESET_PASSWORD.value)
        keep = ctx.session.id if ctx.user.id == user_id else None
        token_store.delete_user_sessions(user_id, except_session_id=keep)
    return UserResponse.from_user(updated)


@router.delete("/users/{user_id}", status_code=204)
def delete_user(
    request: Request,
    user_id: str,
    ctx: AuthContext = Depends(require_rights("manageUsers")),
) -> Response:
    """Delete a user together with their sessions and purpose tokens."""
    user_store: UserStore = request.app.state.user_store
    token_store: TokenStore = request.app.state.token_store

    if user_store.get_by_id(user_id) is None:
        raise NotFoundError("User not found")
    token_store.delete_user_sessions(user_id)
    token_store.delete_user_tokens(user_id)
    user_store.delete_user(user_id)
    return Response(status_code=204)
