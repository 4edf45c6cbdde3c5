"""Shipping company routes: list, CRUD, deactivate via PATCH."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.auth.deps import require_permission
from tradeledger.database import get_db
from tradeledger.models.shipping_company import ShippingCompany
from tradeledger.models.user import User
from tradeledger.schemas.reference import (
    ShippingCompanyCreate,
    ShippingCompanyOut,
    ShippingCompanyUpdate,
)
from tradeledger.utils.activity import log_activity

router = APIRouter()


async def _get_company(db: AsyncSession, company_id: str) -> ShippingCompany:
    company = await db.get(ShippingCompany, company_id)
    if not company:
        raise HTTPException(status_code=404, detail="Shipping company not found")
    return company


@router.get("/", response_model=list[ShippingCompanyOut])
async def list_shipping_companies(
    is_active: bool | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("shipping.read")),
):
    stmt = select(ShippingCompany).order_by(ShippingCompany.name)
    if is_active is not None:
        stmt = stmt.where(ShippingCompany.is_active.is_(is_active))
    result = await db.execute(stmt)
    return [ShippingCompanyOut.model_validate(c) for c in result.scalars().all()]


@router.post("/", response_model=ShippingCompanyOut, status_code=status.HTTP_201_CREATED)
async def create_shipping_company(
    body: ShippingCompanyCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("shipping.write")),
):
    company = ShippingCompany(**body.model_dump())
    db.add(company)
    await db.flush()
    await log_activity(
        db, user,
        action="created",
        entity_type="shipping_company",
        entity_id=company.id,
        entity_code=company.name,
    )
    await db.refresh(company)
    return ShippingCompanyOut.model_validate(company)


@router.get("/{company_id}", response_model=ShippingCompanyOut)
async def get_shipping_company(
    company_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("shipping.read")),
):
    return ShippingCompanyOut.model_validate(await _get_company(db, company_id))


@router.patch("/{company_id}", response_model=ShippingCompanyOut)
async def update_shipping_company(
    company_id: str,
    body: ShippingCompanyUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("shipping.write")),
):
    company = await _get_company(db, company_id)
    updates = body.model_dump(exclude_unset=True)
    for key, value in updates.items():
        setattr(company, key, value)

    await db.flush()
    await log_activity(
        db, user,
        action="updated",
        entity_type="shipping_company",
        entity_id=company.id,
        entity_code=company.name,
        details=updates,
    )
    await db.refresh(company)
    return ShippingCompanyOut.model_validate(company)


@router.delete("/{company_id}", response_model=ShippingCompanyOut)
async def deactivate_shipping_company(
    company_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("shipping.write")),
):
    """Soft delete: shipments and payments keep pointing at the row."""
    company = await _get_company(db, company_id)
    company.is_active = False
    await db.flush()
    await log_activity(
        db, user,
        action="deleted",
        entity_type="shipping_company",
        entity_id=company.id,
        entity_code=company.name,
    )
    await db.refresh(company)
    return ShippingCompanyOut.model_validate(company)
