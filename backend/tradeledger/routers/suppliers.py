"""Supplier routes: paginated list with search, CRUD, deactivate via PATCH."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.auth.deps import require_permission
from tradeledger.database import get_db
from tradeledger.models.supplier import Supplier
from tradeledger.models.user import User
from tradeledger.schemas.common import PaginatedResponse
from tradeledger.schemas.reference import SupplierCreate, SupplierOut, SupplierUpdate
from tradeledger.utils.activity import log_activity

router = APIRouter()


async def _get_supplier(db: AsyncSession, supplier_id: str) -> Supplier:
    supplier = await db.get(Supplier, supplier_id)
    if not supplier:
        raise HTTPException(status_code=404, detail="Supplier not found")
    return supplier


@router.get("/", response_model=PaginatedResponse[SupplierOut])
async def list_suppliers(
    search: str | None = Query(None),
    is_active: bool | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("suppliers.read")),
):
    stmt = select(Supplier)
    if search:
        stmt = stmt.where(Supplier.name.ilike(f"%{search}%"))
    if is_active is not None:
        stmt = stmt.where(Supplier.is_active.is_(is_active))

    total = await db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    result = await db.execute(stmt.order_by(Supplier.name).limit(limit).offset(offset))
    return PaginatedResponse(
        items=[SupplierOut.model_validate(s) for s in result.scalars().all()],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/", response_model=SupplierOut, status_code=status.HTTP_201_CREATED)
async def create_supplier(
    body: SupplierCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("suppliers.write")),
):
    supplier = Supplier(**body.model_dump())
    db.add(supplier)
    await db.flush()
    await log_activity(
        db, user,
        action="created",
        entity_type="supplier",
        entity_id=supplier.id,
        entity_code=supplier.name,
    )
    await db.refresh(supplier)
    return SupplierOut.model_validate(supplier)


@router.get("/{supplier_id}", response_model=SupplierOut)
async def get_supplier(
    supplier_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("suppliers.read")),
):
    return SupplierOut.model_validate(await _get_supplier(db, supplier_id))


@router.patch("/{supplier_id}", response_model=SupplierOut)
async def update_supplier(
    supplier_id: str,
    body: SupplierUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("suppliers.write")),
):
    supplier = await _get_supplier(db, supplier_id)
    updates = body.model_dump(exclude_unset=True)
    for key, value in updates.items():
        setattr(supplier, key, value)

    await db.flush()
    await log_activity(
        db, user,
        action="updated",
        entity_type="supplier",
        entity_id=supplier.id,
        entity_code=supplier.name,
        details=updates,
    )
    await db.refresh(supplier)
    return SupplierOut.model_validate(supplier)


@router.delete("/{supplier_id}", response_model=SupplierOut)
async def deactivate_supplier(
    supplier_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("suppliers.write")),
):
    """Soft delete: shipments and payments keep pointing at the row."""
    supplier = await _get_supplier(db, supplier_id)
    supplier.is_active = False
    await db.flush()
    await log_activity(
        db, user,
        action="deleted",
        entity_type="supplier",
        entity_id=supplier.id,
        entity_code=supplier.name,
    )
    await db.refresh(supplier)
    return SupplierOut.model_validate(supplier)
