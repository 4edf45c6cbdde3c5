"""User management (manager only).

Endpoints:
    GET    /api/users              List users
    POST   /api/users              Create a user
    GET    /api/users/{user_id}    Get one user
    PATCH  /api/users/{user_id}    Update role, name, status, password or overrides
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.auth.deps import require_role
from tradeledger.auth.password import hash_password
from tradeledger.database import get_db
from tradeledger.models.user import User, UserRole
from tradeledger.routers.auth import build_user_out
from tradeledger.schemas.auth import UserCreate, UserOut, UserUpdate
from tradeledger.utils.activity import log_activity

router = APIRouter()


async def _get_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/", response_model=list[UserOut])
async def list_users(
    db: AsyncSession = Depends(get_db),
    _manager: User = Depends(require_role(UserRole.MANAGER)),
):
    result = await db.execute(select(User).order_by(User.username))
    return [build_user_out(u) for u in result.scalars().all()]


@router.post("/", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(require_role(UserRole.MANAGER)),
):
    existing = await db.execute(select(User).where(User.username == body.username))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Username already registered")

    user = User(
        username=body.username,
        hashed_password=hash_password(body.password),
        full_name=body.full_name,
        role=body.role,
        custom_permissions=body.custom_permissions,
        created_by=manager.id,
    )
    db.add(user)
    await db.flush()

    await log_activity(
        db, manager,
        action="created",
        entity_type="user",
        entity_id=user.id,
        entity_code=user.username,
        summary=f"Created {user.role.value} {user.username}",
    )
    return build_user_out(user)


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    _manager: User = Depends(require_role(UserRole.MANAGER)),
):
    return build_user_out(await _get_user(db, user_id))


@router.patch("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: str,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(require_role(UserRole.MANAGER)),
):
    user = await _get_user(db, user_id)
    changes = body.model_dump(exclude_unset=True)

    if user.id == manager.id and (
        changes.get("is_active") is False
        or ("role" in changes and changes["role"] != UserRole.MANAGER)
    ):
        raise HTTPException(status_code=400, detail="Cannot demote or deactivate yourself")

    password = changes.pop("password", None)
    if password:
        if len(password) < 6:
            raise HTTPException(status_code=400, detail="Password must be at least 6 characters")
        user.hashed_password = hash_password(password)
    for field, value in changes.items():
        setattr(user, field, value)
    await db.flush()

    await log_activity(
        db, manager,
        action="updated",
        entity_type="user",
        entity_id=user.id,
        entity_code=user.username,
        details={k: (v.value if isinstance(v, UserRole) else v) for k, v in changes.items()},
    )
    return build_user_out(user)
