"""Accounting reports over import shipments.

Endpoints:
    GET /api/accounting/movement-report               Cost + payment + allocation rows
    GET /api/accounting/payment-methods-report        Totals per payment method
    GET /api/accounting/supplier-balances             Goods cost vs paid per supplier
    GET /api/accounting/shipping-company-balances     Shipping costs vs paid per company
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.auth.deps import require_permission
from tradeledger.database import get_db
from tradeledger.models.payment import ShipmentPayment
from tradeledger.models.shipment import Shipment
from tradeledger.models.shipping_company import ShippingCompany
from tradeledger.models.supplier import Supplier
from tradeledger.models.user import User
from tradeledger.schemas.accounting import MovementReportOut, PartyBalanceRow, PaymentMethodRow
from tradeledger.services import movements

router = APIRouter()


async def _shipments(db: AsyncSession) -> list[Shipment]:
    return list((await db.execute(select(Shipment))).scalars().all())


async def _payments(db: AsyncSession) -> list[ShipmentPayment]:
    result = await db.execute(select(ShipmentPayment).order_by(ShipmentPayment.payment_date))
    return list(result.scalars().all())


async def _names(db: AsyncSession, model, column) -> dict[str, str]:
    result = await db.execute(select(model.id, column))
    return {row[0]: row[1] for row in result.all()}


@router.get("/movement-report", response_model=MovementReportOut)
async def movement_report(
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    shipment_id: str | None = Query(None),
    party_type: str | None = Query(None),
    party_id: str | None = Query(None),
    movement_type: str | None = Query(None),
    cost_component: str | None = Query(None),
    payment_method: str | None = Query(None),
    shipment_status: str | None = Query(None),
    payment_status: str | None = Query(None),
    include_archived: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("reports.read")),
):
    filters = movements.MovementFilters(
        date_from=date_from,
        date_to=date_to,
        shipment_id=shipment_id,
        party_type=party_type,
        party_id=party_id,
        movement_type=movement_type,
        cost_component=cost_component,
        payment_method=payment_method,
        shipment_status=shipment_status,
        payment_status=payment_status,
        include_archived=include_archived,
    )
    return movements.build_movement_report(
        await _shipments(db),
        await _payments(db),
        supplier_names=await _names(db, Supplier, Supplier.name),
        company_names=await _names(db, ShippingCompany, ShippingCompany.name),
        user_names=await _names(db, User, User.full_name),
        filters=filters,
    )


@router.get("/payment-methods-report", response_model=list[PaymentMethodRow])
async def payment_methods_report(
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("reports.read")),
):
    return movements.build_payment_methods_report(
        await _payments(db), date_from=date_from, date_to=date_to,
    )


@router.get("/supplier-balances", response_model=list[PartyBalanceRow])
async def supplier_balances(
    include_archived: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("reports.read")),
):
    return movements.build_supplier_balances(
        await _shipments(db),
        await _payments(db),
        await _names(db, Supplier, Supplier.name),
        include_archived=include_archived,
    )


@router.get("/shipping-company-balances", response_model=list[PartyBalanceRow])
async def shipping_company_balances(
    include_archived: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("reports.read")),
):
    return movements.build_shipping_company_balances(
        await _shipments(db),
        await _payments(db),
        await _names(db, ShippingCompany, ShippingCompany.name),
        include_archived=include_archived,
    )
