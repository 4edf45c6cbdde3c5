"""Import shipment routes.

Endpoints:
    GET    /api/shipments                                         Paginated list
    POST   /api/shipments                                         Create (step 1)
    GET    /api/shipments/{id}                                    Full shipment
    PATCH  /api/shipments/{id}                                    One tagged step command
    DELETE /api/shipments/{id}                                    Archive
    PATCH  /api/shipments/{id}/missing-pieces                     Price missing pieces
    GET    /api/shipments/{id}/items                              Items only
    GET    /api/shipments/{id}/shipping                           Shipping details
    GET    /api/shipments/{id}/related-parties                    Suppliers + shipping company
    GET    /api/shipments/{id}/suppliers/{supplier_id}/goods-summary
    GET    /api/shipments/{id}/invoice-summary                    Landed cost per item
"""

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import TypeAdapter
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.auth.deps import require_permission
from tradeledger.database import get_db
from tradeledger.models.shipment import Shipment
from tradeledger.models.user import User
from tradeledger.schemas.common import PaginatedResponse
from tradeledger.schemas.shipment import (
    GoodsSummaryOut,
    InvoiceSummaryOut,
    MissingPiecesUpdate,
    RelatedPartiesOut,
    ShipmentCreate,
    ShipmentItemOut,
    ShipmentOut,
    ShipmentStep,
    ShipmentSummary,
    ShippingDetailsOut,
)
from tradeledger.services import shipments as svc
from tradeledger.services.currency import round2

router = APIRouter()

_STEP_ADAPTER = TypeAdapter(ShipmentStep)


def _out(shipment: Shipment) -> ShipmentOut:
    out = ShipmentOut.model_validate(shipment)
    if shipment.shipping_company:
        out.shipping_company_name = shipment.shipping_company.name
    return out


@router.get("/", response_model=PaginatedResponse[ShipmentSummary])
async def list_shipments(
    status_filter: str | None = Query(None, alias="status"),
    search: str | None = Query(None),
    include_archived: bool = Query(False),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("shipments.read")),
):
    stmt = select(Shipment)
    if status_filter:
        stmt = stmt.where(Shipment.status == status_filter)
    elif not include_archived:
        stmt = stmt.where(Shipment.status != "archived")
    if search:
        stmt = stmt.where(or_(
            Shipment.shipment_code.ilike(f"%{search}%"),
            Shipment.shipment_name.ilike(f"%{search}%"),
        ))

    total = await db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    result = await db.execute(
        stmt.order_by(Shipment.purchase_date.desc(), Shipment.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    items = []
    for shipment in result.scalars().all():
        summary = ShipmentSummary.model_validate(shipment)
        if shipment.shipping_company:
            summary.shipping_company_name = shipment.shipping_company.name
        items.append(summary)
    return PaginatedResponse(items=items, total=total, limit=limit, offset=offset)


@router.post("/", response_model=ShipmentOut, status_code=status.HTTP_201_CREATED)
async def create_shipment(
    body: ShipmentCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("shipments.write")),
):
    return _out(await svc.create_shipment(db, body, user))


@router.get("/{shipment_id}", response_model=ShipmentOut)
async def get_shipment(
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("shipments.read")),
):
    return _out(await svc.get_shipment(db, shipment_id))


@router.patch("/{shipment_id}", response_model=ShipmentOut)
async def update_shipment(
    shipment_id: str,
    body: dict = Body(...),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("shipments.write")),
):
    """Apply one wizard step: goods, shipping, customs, discount or receipt."""
    cmd = _STEP_ADAPTER.validate_python(body)
    return _out(await svc.apply_step(db, shipment_id, cmd, user))


@router.delete("/{shipment_id}", response_model=ShipmentOut)
async def archive_shipment(
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("shipments.delete")),
):
    await svc.archive_shipment(db, shipment_id, user)
    return _out(await svc.get_shipment(db, shipment_id))


@router.patch("/{shipment_id}/missing-pieces", response_model=ShipmentOut)
async def update_missing_pieces(
    shipment_id: str,
    body: MissingPiecesUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("shipments.write")),
):
    return _out(await svc.update_missing_pieces(db, shipment_id, body.updates, user))


@router.get("/{shipment_id}/items", response_model=list[ShipmentItemOut])
async def shipment_items(
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("shipments.read")),
):
    shipment = await svc.get_shipment(db, shipment_id)
    return [ShipmentItemOut.model_validate(i) for i in shipment.items]


@router.get("/{shipment_id}/shipping", response_model=ShippingDetailsOut | None)
async def shipment_shipping(
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("shipments.read")),
):
    shipment = await svc.get_shipment(db, shipment_id)
    if shipment.shipping is None:
        return None
    return ShippingDetailsOut.model_validate(shipment.shipping)


@router.get("/{shipment_id}/related-parties", response_model=RelatedPartiesOut)
async def shipment_related_parties(
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("shipments.read")),
):
    shipment = await svc.get_shipment(db, shipment_id)
    return await svc.related_parties(db, shipment)


@router.get(
    "/{shipment_id}/suppliers/{supplier_id}/goods-summary",
    response_model=GoodsSummaryOut,
)
async def supplier_goods_summary(
    shipment_id: str,
    supplier_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("shipments.read")),
):
    shipment = await svc.get_shipment(db, shipment_id)
    summary = await svc.supplier_goods_summary_for(db, shipment, supplier_id)
    return GoodsSummaryOut(
        supplier_id=supplier_id,
        supplier_goods_total_rmb=round2(summary.goods_total_rmb),
        supplier_paid_rmb=round2(summary.paid_rmb),
        supplier_remaining_rmb=summary.reported_remaining_rmb,
        supplier_overpaid_rmb=summary.overpaid_rmb,
    )


@router.get("/{shipment_id}/invoice-summary", response_model=InvoiceSummaryOut)
async def shipment_invoice_summary(
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("shipments.read")),
):
    return svc.invoice_summary(await svc.get_shipment(db, shipment_id))
