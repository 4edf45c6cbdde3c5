"""Inventory movement routes (read only; rows are written by receipts
and resolved return cases)."""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.auth.deps import require_permission
from tradeledger.database import get_db
from tradeledger.models.inventory_movement import InventoryMovement
from tradeledger.models.user import User
from tradeledger.schemas.common import PaginatedResponse
from tradeledger.schemas.shipment import InventoryMovementOut

router = APIRouter()


@router.get("/", response_model=PaginatedResponse[InventoryMovementOut])
async def list_inventory_movements(
    shipment_id: str | None = Query(None),
    source_type: str | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("inventory.read")),
):
    stmt = select(InventoryMovement)
    if shipment_id:
        stmt = stmt.where(InventoryMovement.shipment_id == shipment_id)
    if source_type:
        stmt = stmt.where(InventoryMovement.source_type == source_type)
    if date_from:
        stmt = stmt.where(InventoryMovement.movement_date >= date_from)
    if date_to:
        stmt = stmt.where(InventoryMovement.movement_date <= date_to)

    total = await db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    result = await db.execute(
        stmt.order_by(InventoryMovement.movement_date.desc(), InventoryMovement.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return PaginatedResponse(
        items=[InventoryMovementOut.model_validate(m) for m in result.scalars().all()],
        total=total,
        limit=limit,
        offset=offset,
    )
