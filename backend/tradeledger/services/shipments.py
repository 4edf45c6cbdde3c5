"""Shipment write path: create, wizard step commands, missing pieces,
receipt and archive.

Every command loads the shipment, applies its own fields only, then
recomputes all derived totals through `services.costing` before the
enclosing transaction commits.  Domain errors are raised before any
row is changed, so a rejected command leaves nothing behind.
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.middleware.exceptions import ConflictError, NotFoundError, ValidationError
from tradeledger.models.inventory_movement import InventoryMovement
from tradeledger.models.payment import ShipmentPayment
from tradeledger.models.shipment import Shipment, ShipmentItem, ShipmentShippingDetails
from tradeledger.models.shipping_company import ShippingCompany
from tradeledger.models.supplier import Supplier
from tradeledger.models.user import User
from tradeledger.schemas.shipment import (
    STEP_NUMBERS,
    CustomsStep,
    DiscountStep,
    GoodsStep,
    MissingPieceIn,
    ReceiptStep,
    ShipmentCreate,
    ShippingStep,
)
from tradeledger.services.allocation import supplier_goods_summary
from tradeledger.services.costing import (
    ItemInput,
    ShipmentCosts,
    ShippingInput,
    compute_shipment_costs,
    landed_unit_cost_rmb,
    price_missing_pieces,
)
from tradeledger.services.currency import ZERO, round2, to_decimal
from tradeledger.services.rates import latest_rate, purchase_rate_or_default
from tradeledger.utils.activity import log_activity
from tradeledger.utils.numbering import generate_code

logger = logging.getLogger(__name__)

STATUS_ORDER = ["new", "awaiting_shipping", "ready_for_receipt", "received", "archived"]
STEP_STATUS = {
    1: "awaiting_shipping",
    2: "awaiting_shipping",
    3: "ready_for_receipt",
    4: "ready_for_receipt",
    5: "received",
}
UNIT_COST_PLACES = Decimal("0.0001")


# ── Loading ──────────────────────────────────────────────────

async def get_shipment(db: AsyncSession, shipment_id: str, for_update: bool = False) -> Shipment:
    """Load a shipment with its items and shipping details.

    `for_update` takes a row lock on the shipment for the rest of the
    transaction.
    """
    stmt = (
        select(Shipment)
        .where(Shipment.id == shipment_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    shipment = (await db.execute(stmt)).scalar_one_or_none()
    if not shipment:
        raise NotFoundError("Shipment", shipment_id)
    return shipment


def ensure_unlocked(shipment: Shipment) -> None:
    if shipment.status == "archived":
        raise ConflictError(
            f"Shipment {shipment.shipment_code} is archived and cannot be changed",
            error_code="SHIPMENT_LOCKED",
        )


async def _ensure_shipping_company(db: AsyncSession, company_id: str | None) -> None:
    if company_id is None:
        return
    exists = await db.scalar(select(ShippingCompany.id).where(ShippingCompany.id == company_id))
    if not exists:
        raise NotFoundError("Shipping company", company_id)


async def _ensure_suppliers(db: AsyncSession, supplier_ids: set[str]) -> None:
    if not supplier_ids:
        return
    result = await db.execute(select(Supplier.id).where(Supplier.id.in_(supplier_ids)))
    missing = supplier_ids - {row[0] for row in result.all()}
    if missing:
        raise NotFoundError("Supplier", ", ".join(sorted(missing)))


# ── Costing bridge ───────────────────────────────────────────

def _item_input(item: ShipmentItem) -> ItemInput:
    return ItemInput(
        cartons_ctn=item.cartons_ctn,
        pieces_per_carton_pcs=item.pieces_per_carton_pcs,
        purchase_price_per_piece_rmb=item.purchase_price_per_piece_rmb,
        customs_cost_per_piece_egp=item.customs_cost_per_piece_egp,
        takhreeg_cost_per_carton_egp=item.takhreeg_cost_per_carton_egp,
        missing_pieces=item.missing_pieces or 0,
        supplier_id=item.supplier_id,
        ref=item.id,
    )


def _shipping_input(details: ShipmentShippingDetails | None) -> ShippingInput | None:
    if details is None:
        return None
    return ShippingInput(
        commission_rate_percent=details.commission_rate_percent,
        shipping_area_sqm=details.shipping_area_sqm,
        shipping_cost_per_sqm_usd=details.shipping_cost_per_sqm_usd,
        usd_to_rmb_rate=details.usd_to_rmb_rate,
        rmb_to_egp_rate=details.rmb_to_egp_rate,
    )


def compute_costs(shipment: Shipment) -> ShipmentCosts:
    """Fresh cost breakdown from the shipment's current inputs."""
    return compute_shipment_costs(
        [_item_input(i) for i in shipment.items],
        shipment.purchase_rmb_to_egp_rate,
        shipping=_shipping_input(shipment.shipping),
        partial_discount_rmb=shipment.partial_discount_rmb or ZERO,
    )


def _apply_costs(shipment: Shipment, costs: ShipmentCosts) -> None:
    by_id = {c.ref: c for c in costs.items}
    for item in shipment.items:
        c = by_id[item.id]
        item.total_pieces_cou = c.total_pieces_cou
        item.total_purchase_cost_rmb = c.total_purchase_cost_rmb
        item.total_customs_cost_egp = c.total_customs_cost_egp
        item.total_takhreeg_cost_egp = c.total_takhreeg_cost_egp
        item.missing_pieces = c.missing_pieces
        item.missing_cost_egp = c.missing_cost_egp
    for column, value in costs.shipment_columns().items():
        setattr(shipment, column, value)
    _refresh_balance(shipment)


def _refresh_balance(shipment: Shipment) -> None:
    paid = to_decimal(shipment.total_paid_egp)
    shipment.balance_egp = round2(max(ZERO, to_decimal(shipment.final_total_cost_egp) - paid))


def recompute_totals(shipment: Shipment) -> ShipmentCosts:
    costs = compute_costs(shipment)
    _apply_costs(shipment, costs)
    return costs


async def refresh_payment_totals(db: AsyncSession, shipment: Shipment) -> None:
    """Re-sum the shipment's payments into total paid, balance and last payment date."""
    row = (
        await db.execute(
            select(
                func.coalesce(func.sum(ShipmentPayment.amount_egp), 0),
                func.max(ShipmentPayment.payment_date),
            ).where(ShipmentPayment.shipment_id == shipment.id)
        )
    ).one()
    shipment.total_paid_egp = round2(row[0])
    shipment.last_payment_date = row[1]
    _refresh_balance(shipment)


def advance_status(current: str, step_no: int) -> str:
    """Status after saving a step; never moves backwards."""
    target = STEP_STATUS[step_no]
    if STATUS_ORDER.index(current) >= STATUS_ORDER.index(target):
        return current
    return target


# ── Create ───────────────────────────────────────────────────

def _new_item(line_no: int, body) -> ShipmentItem:
    return ShipmentItem(
        id=str(uuid.uuid4()),
        line_no=line_no,
        supplier_id=body.supplier_id,
        product_name=body.product_name,
        product_type=body.product_type,
        country_of_origin=body.country_of_origin,
        image_url=body.image_url,
        cartons_ctn=body.cartons_ctn,
        pieces_per_carton_pcs=body.pieces_per_carton_pcs,
        total_pieces_cou=body.cartons_ctn * body.pieces_per_carton_pcs,
        purchase_price_per_piece_rmb=body.purchase_price_per_piece_rmb,
        total_purchase_cost_rmb=ZERO,
        missing_pieces=0,
    )


async def create_shipment(db: AsyncSession, body: ShipmentCreate, user: User) -> Shipment:
    """Create a shipment and its items in one transaction (wizard step 1)."""
    rate = await purchase_rate_or_default(db, body.purchase_rmb_to_egp_rate)

    # Reject bad input before anything is added to the session
    compute_shipment_costs(
        [
            ItemInput(
                cartons_ctn=i.cartons_ctn,
                pieces_per_carton_pcs=i.pieces_per_carton_pcs,
                purchase_price_per_piece_rmb=i.purchase_price_per_piece_rmb,
            )
            for i in body.items
        ],
        rate,
    )
    await _ensure_shipping_company(db, body.shipping_company_id)
    await _ensure_suppliers(db, {i.supplier_id for i in body.items if i.supplier_id})

    shipment = Shipment(
        id=str(uuid.uuid4()),
        shipment_code=await generate_code(db, "shipment", on=body.purchase_date),
        shipment_name=body.shipment_name,
        status="awaiting_shipping",
        last_step=1,
        purchase_date=body.purchase_date,
        purchase_rmb_to_egp_rate=rate,
        shipping_company_id=body.shipping_company_id,
        partial_discount_rmb=ZERO,
        total_paid_egp=ZERO,
        created_by=user.id,
    )
    shipment.items = [_new_item(n, i) for n, i in enumerate(body.items, start=1)]
    shipment.shipping = None
    recompute_totals(shipment)

    db.add(shipment)
    await db.flush()

    await log_activity(
        db, user,
        action="created",
        entity_type="shipment",
        entity_id=shipment.id,
        entity_code=shipment.shipment_code,
        summary=f"Created shipment {shipment.shipment_name} with {len(body.items)} item(s)",
    )
    logger.info("Shipment %s created by %s", shipment.shipment_code, user.username)
    return await get_shipment(db, shipment.id)


# ── Step commands ────────────────────────────────────────────

async def _apply_goods(db: AsyncSession, shipment: Shipment, cmd: GoodsStep) -> None:
    if not cmd.items:
        raise ValidationError("at least one item required", field="items")

    existing = {item.id: item for item in shipment.items}
    unknown = [i.id for i in cmd.items if i.id and i.id not in existing]
    if unknown:
        raise NotFoundError("Shipment item", ", ".join(unknown))

    if cmd.shipping_company_id is not None:
        await _ensure_shipping_company(db, cmd.shipping_company_id)
    await _ensure_suppliers(db, {i.supplier_id for i in cmd.items if i.supplier_id})

    if cmd.shipment_name is not None:
        shipment.shipment_name = cmd.shipment_name
    if cmd.purchase_date is not None:
        shipment.purchase_date = cmd.purchase_date
    if cmd.purchase_rmb_to_egp_rate is not None:
        shipment.purchase_rmb_to_egp_rate = cmd.purchase_rmb_to_egp_rate
    if cmd.shipping_company_id is not None:
        shipment.shipping_company_id = cmd.shipping_company_id

    items = []
    for line_no, body in enumerate(cmd.items, start=1):
        item = existing.get(body.id) if body.id else None
        if item is None:
            item = _new_item(line_no, body)
        else:
            # Missing pieces and customs inputs belong to other commands
            item.line_no = line_no
            item.supplier_id = body.supplier_id
            item.product_name = body.product_name
            item.product_type = body.product_type
            item.country_of_origin = body.country_of_origin
            item.image_url = body.image_url
            item.cartons_ctn = body.cartons_ctn
            item.pieces_per_carton_pcs = body.pieces_per_carton_pcs
            item.purchase_price_per_piece_rmb = body.purchase_price_per_piece_rmb
        items.append(item)
    shipment.items = items


async def _apply_shipping(db: AsyncSession, shipment: Shipment, cmd: ShippingStep) -> None:
    rmb_to_egp = cmd.rmb_to_egp_rate
    if rmb_to_egp is None:
        rmb_to_egp = await latest_rate(db, "RMB", "EGP") or shipment.purchase_rmb_to_egp_rate
    usd_to_rmb = cmd.usd_to_rmb_rate
    if usd_to_rmb is None:
        usd_to_rmb = await latest_rate(db, "USD", "RMB")
    if usd_to_rmb is None:
        raise ValidationError("USD to RMB rate is required", field="usd_to_rmb_rate")

    details = shipment.shipping
    if details is None:
        details = ShipmentShippingDetails(shipment_id=shipment.id)
        shipment.shipping = details
    details.commission_rate_percent = cmd.commission_rate_percent
    details.shipping_area_sqm = cmd.shipping_area_sqm
    details.shipping_cost_per_sqm_usd = cmd.shipping_cost_per_sqm_usd
    details.shipping_date = cmd.shipping_date
    details.rmb_to_egp_rate = rmb_to_egp
    details.usd_to_rmb_rate = usd_to_rmb
    details.rates_updated_at = datetime.utcnow()


def _apply_customs(shipment: Shipment, cmd: CustomsStep) -> None:
    by_id = {item.id: item for item in shipment.items}
    unknown = [i.item_id for i in cmd.items if i.item_id not in by_id]
    if unknown:
        raise NotFoundError("Shipment item", ", ".join(unknown))

    if cmd.customs_invoice_date is not None:
        shipment.customs_invoice_date = cmd.customs_invoice_date
    for entry in cmd.items:
        item = by_id[entry.item_id]
        item.customs_cost_per_piece_egp = entry.customs_cost_per_piece_egp
        item.takhreeg_cost_per_carton_egp = entry.takhreeg_cost_per_carton_egp


def _apply_discount(shipment: Shipment, cmd: DiscountStep) -> None:
    shipment.partial_discount_rmb = cmd.partial_discount_rmb
    shipment.discount_notes = cmd.discount_notes


async def _book_receipt(db: AsyncSession, shipment: Shipment, costs: ShipmentCosts, when: datetime) -> int:
    """Rebuild the shipment's receipt inventory movements at landed cost."""
    await db.execute(
        delete(InventoryMovement).where(
            InventoryMovement.shipment_id == shipment.id,
            InventoryMovement.source_type == "shipment_receipt",
        )
    )
    names = {item.id: item.product_name for item in shipment.items}
    count = 0
    for c in costs.items:
        pieces_in = c.total_pieces_cou - c.missing_pieces
        if pieces_in <= 0:
            continue
        unit_egp = c.unit_cost_egp.quantize(UNIT_COST_PLACES)
        db.add(InventoryMovement(
            source_type="shipment_receipt",
            source_id=shipment.id,
            shipment_id=shipment.id,
            shipment_item_id=c.ref,
            product_name=names.get(c.ref),
            total_pieces_in=pieces_in,
            unit_cost_egp=unit_egp,
            unit_cost_rmb=landed_unit_cost_rmb(c.unit_cost_egp, costs.purchase_rate).quantize(UNIT_COST_PLACES),
            total_cost_egp=round2(Decimal(pieces_in) * c.unit_cost_egp),
            movement_date=when.date(),
        ))
        count += 1
    return count


async def apply_step(db: AsyncSession, shipment_id: str, cmd, user: User) -> Shipment:
    """Apply one wizard step command and recompute the shipment's totals."""
    shipment = await get_shipment(db, shipment_id, for_update=True)
    ensure_unlocked(shipment)
    step_no = STEP_NUMBERS[cmd.step]

    if isinstance(cmd, GoodsStep):
        await _apply_goods(db, shipment, cmd)
    elif isinstance(cmd, ShippingStep):
        await _apply_shipping(db, shipment, cmd)
    elif isinstance(cmd, CustomsStep):
        _apply_customs(shipment, cmd)
    elif isinstance(cmd, DiscountStep):
        _apply_discount(shipment, cmd)

    costs = recompute_totals(shipment)

    details = None
    if isinstance(cmd, ReceiptStep):
        when = cmd.received_at or datetime.utcnow()
        shipment.received_at = when
        booked = await _book_receipt(db, shipment, costs, when)
        details = {"inventory_movements": booked}

    shipment.status = advance_status(shipment.status, step_no)
    shipment.last_step = max(shipment.last_step or 1, step_no)
    await db.flush()

    await log_activity(
        db, user,
        action="received" if isinstance(cmd, ReceiptStep) else "updated",
        entity_type="shipment",
        entity_id=shipment.id,
        entity_code=shipment.shipment_code,
        summary=f"Saved step {step_no} ({cmd.step}) of shipment {shipment.shipment_code}",
        details=details,
    )
    return await get_shipment(db, shipment.id)


# ── Missing pieces ───────────────────────────────────────────

async def update_missing_pieces(
    db: AsyncSession,
    shipment_id: str,
    updates: list[MissingPieceIn],
    user: User,
) -> Shipment:
    """Price missing pieces for the listed items.

    Only the items' missing pieces / missing cost and the shipment's
    missing, final and balance totals are written.
    """
    shipment = await get_shipment(db, shipment_id, for_update=True)
    ensure_unlocked(shipment)

    costs = compute_costs(shipment)
    price_missing_pieces(costs, {u.item_id: u.missing_pieces for u in updates})

    by_id = {c.ref: c for c in costs.items}
    changes = []
    for item in shipment.items:
        c = by_id[item.id]
        if item.missing_pieces != c.missing_pieces or to_decimal(item.missing_cost_egp) != c.missing_cost_egp:
            changes.append({
                "item_id": item.id,
                "from": item.missing_pieces,
                "to": c.missing_pieces,
                "missing_cost_egp": str(c.missing_cost_egp),
            })
        item.missing_pieces = c.missing_pieces
        item.missing_cost_egp = c.missing_cost_egp

    columns = costs.shipment_columns()
    shipment.missing_cost_egp = columns["missing_cost_egp"]
    shipment.final_total_cost_egp = columns["final_total_cost_egp"]
    _refresh_balance(shipment)
    await db.flush()

    await log_activity(
        db, user,
        action="missing_pieces_updated",
        entity_type="shipment",
        entity_id=shipment.id,
        entity_code=shipment.shipment_code,
        summary=f"Updated missing pieces on {len(changes)} item(s)",
        details={"changes": changes},
    )
    return await get_shipment(db, shipment.id)


# ── Archive ──────────────────────────────────────────────────

async def archive_shipment(db: AsyncSession, shipment_id: str, user: User) -> Shipment:
    shipment = await get_shipment(db, shipment_id, for_update=True)
    ensure_unlocked(shipment)
    shipment.status = "archived"
    shipment.archived_at = datetime.utcnow()
    await db.flush()

    await log_activity(
        db, user,
        action="archived",
        entity_type="shipment",
        entity_id=shipment.id,
        entity_code=shipment.shipment_code,
        summary=f"Archived shipment {shipment.shipment_code}",
    )
    return shipment


# ── Read side ────────────────────────────────────────────────

async def shipment_payments(db: AsyncSession, shipment_id: str) -> list[ShipmentPayment]:
    result = await db.execute(
        select(ShipmentPayment)
        .where(ShipmentPayment.shipment_id == shipment_id)
        .order_by(ShipmentPayment.payment_date)
    )
    return list(result.scalars().all())


async def supplier_goods_summary_for(db: AsyncSession, shipment: Shipment, supplier_id: str):
    if await db.get(Supplier, supplier_id) is None:
        raise NotFoundError("Supplier", supplier_id)
    payments = await shipment_payments(db, shipment.id)
    allocations = [a for p in payments for a in p.allocations]
    return supplier_goods_summary(supplier_id, shipment.items, payments, allocations)


async def related_parties(db: AsyncSession, shipment: Shipment) -> dict:
    """Suppliers appearing on the shipment's items plus its shipping company."""
    supplier_ids = []
    for item in shipment.items:
        if item.supplier_id and item.supplier_id not in supplier_ids:
            supplier_ids.append(item.supplier_id)

    names = {}
    if supplier_ids:
        result = await db.execute(
            select(Supplier.id, Supplier.name).where(Supplier.id.in_(supplier_ids))
        )
        names = dict(result.all())

    company = shipment.shipping_company
    return {
        "suppliers": [{"id": sid, "name": names.get(sid, "")} for sid in supplier_ids],
        "shipping_company": {"id": company.id, "name": company.name} if company else None,
    }


def invoice_summary(shipment: Shipment) -> dict:
    """Per-item landed cost breakdown, derived fresh from current inputs."""
    costs = compute_costs(shipment)
    names = {item.id: item.product_name for item in shipment.items}
    rate = costs.purchase_rate
    lines = []
    for c in costs.items:
        lines.append({
            "item_id": c.ref,
            "product_name": names.get(c.ref),
            "supplier_id": c.supplier_id,
            "total_pieces_cou": c.total_pieces_cou,
            "piece_ratio": c.piece_ratio.quantize(UNIT_COST_PLACES),
            "purchase_cost_rmb": c.total_purchase_cost_rmb,
            "purchase_cost_egp": round2(c.total_purchase_cost_rmb * rate),
            "share_of_extras_egp": round2(c.share_of_extras_egp),
            "total_cost_egp": round2(c.total_cost_egp),
            "unit_cost_egp": c.unit_cost_egp.quantize(UNIT_COST_PLACES),
            "unit_cost_rmb": landed_unit_cost_rmb(c.unit_cost_egp, rate).quantize(UNIT_COST_PLACES),
            "missing_pieces": c.missing_pieces,
            "missing_cost_egp": c.missing_cost_egp,
        })
    return {
        "shipment_id": shipment.id,
        "shipment_code": shipment.shipment_code,
        "purchase_rate": rate,
        "total_pieces": costs.total_pieces,
        "purchase_cost_rmb": round2(costs.purchase_cost_rmb),
        "purchase_cost_egp": round2(costs.purchase_cost_egp),
        "discount_egp": round2(costs.discount_egp),
        "commission_cost_egp": round2(costs.commission_cost_egp),
        "shipping_cost_egp": round2(costs.shipping_cost_egp),
        "customs_cost_egp": round2(costs.customs_cost_egp),
        "takhreeg_cost_egp": round2(costs.takhreeg_cost_egp),
        "shared_extras_egp": round2(costs.shared_extras_egp),
        "missing_cost_egp": round2(costs.missing_cost_egp),
        "final_total_cost_egp": round2(costs.final_total_cost_egp),
        "lines": lines,
    }
