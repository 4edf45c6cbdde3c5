"""Auth routes: login, refresh, current user, password change.

Route overview:
  POST /login            username + password login
  POST /refresh          exchange a refresh token for a new token pair
  GET  /me               the current user profile + permissions
  POST /change-password  change the current user's password
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.auth.deps import get_current_user
from tradeledger.auth.jwt import create_access_token, create_refresh_token, decode_token
from tradeledger.auth.password import hash_password, verify_password
from tradeledger.auth.permissions import resolve_permissions
from tradeledger.database import get_db
from tradeledger.middleware.exceptions import AuthorizationError, UnauthenticatedError
from tradeledger.models.user import User
from tradeledger.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    RefreshRequest,
    TokenResponse,
    UserOut,
)
from tradeledger.schemas.common import MessageResponse

router = APIRouter()


# ── Helpers ──────────────────────────────────────────────────

def build_user_out(user: User, permissions: list[str] | None = None) -> UserOut:
    if permissions is None:
        permissions = resolve_permissions(user.role.value, user.custom_permissions)
    return UserOut(
        id=user.id,
        username=user.username,
        full_name=user.full_name,
        role=user.role.value,
        is_active=user.is_active,
        permissions=permissions,
    )


def _build_token_response(user: User, permissions: list[str]) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(
            user_id=user.id,
            role=user.role.value,
            permissions=permissions,
        ),
        refresh_token=create_refresh_token(user_id=user.id, role=user.role.value),
        user=build_user_out(user, permissions),
    )


# ── POST /login ──────────────────────────────────────────────

@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Username + password login. Returns JWT with role and permissions."""
    result = await db.execute(select(User).where(User.username == body.username))
    user = result.scalar_one_or_none()
    if not user or not verify_password(body.password, user.hashed_password):
        raise UnauthenticatedError("Invalid credentials")
    if not user.is_active:
        raise AuthorizationError("Account deactivated")

    permissions = resolve_permissions(user.role.value, user.custom_permissions)
    return _build_token_response(user, permissions)


# ── POST /refresh ────────────────────────────────────────────

@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, db: AsyncSession = Depends(get_db)):
    """Exchange a refresh token for a new access + refresh token pair."""
    payload = decode_token(body.refresh_token)
    if payload.get("type") != "refresh":
        raise UnauthenticatedError("Invalid refresh token")

    result = await db.execute(select(User).where(User.id == payload.get("sub")))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise UnauthenticatedError("User not found or inactive")

    # Re-resolve permissions (may have changed since last token)
    permissions = resolve_permissions(user.role.value, user.custom_permissions)
    return _build_token_response(user, permissions)


# ── GET /me ──────────────────────────────────────────────────

@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)):
    return build_user_out(user)


# ── POST /change-password ────────────────────────────────────

@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if not verify_password(body.current_password, user.hashed_password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    user.hashed_password = hash_password(body.new_password)
    await db.flush()
    return MessageResponse(message="Password changed")
