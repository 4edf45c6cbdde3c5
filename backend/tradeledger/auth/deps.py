"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_user        → decode JWT, load user from DB, return User
  require_role(...)       → restrict to specific roles
  require_permission(...) → restrict to specific granular permissions
"""

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.auth.jwt import decode_token
from tradeledger.auth.permissions import has_permission
from tradeledger.database import get_db
from tradeledger.middleware.exceptions import AuthorizationError, UnauthenticatedError
from tradeledger.models.user import User, UserRole

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


# ── Core user dependency ────────────────────────────────────

async def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode the JWT, load the user, and return it.

    Also stashes the decoded payload on the user object as `_token_payload`
    so downstream deps can read the permission claims without re-decoding.
    """
    if not token:
        raise UnauthenticatedError()
    payload = decode_token(token)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise UnauthenticatedError("Invalid or expired token")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise UnauthenticatedError("User not found or inactive")

    user._token_payload = payload  # type: ignore[attr-defined]
    return user


# ── Role-based access control ───────────────────────────────

def require_role(*roles: UserRole):
    """Dependency factory: restrict to one or more roles.

    Usage:
        @router.post("/backup/start")
        async def start(user: User = Depends(require_role(UserRole.MANAGER))):
            ...
    """
    async def _check(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise AuthorizationError(f"Requires role: {', '.join(r.value for r in roles)}")
        return user

    return _check


# ── Permission-based access control ─────────────────────────

def require_permission(*perms: str):
    """Dependency factory: restrict to users who hold ALL listed permissions.

    Reads permissions from the JWT claims (embedded at login), so this is
    a zero-DB-hit check for the hot path.

    Usage:
        @router.post("/payments")
        async def create_payment(user: User = Depends(require_permission("payments.write"))):
            ...
    """
    async def _check(user: User = Depends(get_current_user)) -> User:
        payload: dict = getattr(user, "_token_payload", {})
        user_perms: list[str] = payload.get("permissions", [])

        missing = [p for p in perms if not has_permission(user_perms, p)]
        if missing:
            raise AuthorizationError(f"Missing permissions: {', '.join(missing)}")
        return user

    return _check
