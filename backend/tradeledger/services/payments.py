"""Shipment payment recording.

A payment is checked and priced in this order, all before any row is
written:

  1. shipment exists and is not archived (row-locked for the rest of
     the transaction)
  2. the party belongs to the shipment for this cost component
  3. the EGP amount is derived from the payment rate
  4. overpay guards: party/component remaining, then shipment remaining
  5. optional auto-allocation across the shipment's suppliers

The payment, its allocations, the shipment's paid totals and the audit
entries are then written in the caller's transaction.
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.middleware.exceptions import NotFoundError, ValidationError
from tradeledger.models.payment import PaymentAllocation, ShipmentPayment
from tradeledger.models.shipment import Shipment
from tradeledger.models.user import User
from tradeledger.schemas.payment import AttachmentFinalize, PaymentCreate
from tradeledger.services.allocation import (
    EPSILON,
    GOODS_COST,
    allocate_shipment_goods_payment,
    build_supplier_outstanding,
    can_auto_allocate_payment,
    should_use_supplier_goods_summary,
    supplier_goods_summary,
)
from tradeledger.services.currency import ZERO, convert, round2, to_decimal
from tradeledger.services.rates import latest_rate
from tradeledger.services.shipments import (
    ensure_unlocked,
    get_shipment,
    refresh_payment_totals,
    shipment_payments,
)
from tradeledger.utils.activity import log_activity
from tradeledger.utils.numbering import generate_code

logger = logging.getLogger(__name__)

SHIPPING_COMPONENTS = {"shipping", "commission", "customs", "takhreeg", "customs_takhreeg"}
EGP_COMPONENTS = {"customs", "takhreeg", "customs_takhreeg"}


def component_currency(component: str) -> str:
    return "EGP" if component in EGP_COMPONENTS else "RMB"


def _overpay(message: str, **details) -> ValidationError:
    return ValidationError(
        message,
        error_code="PAYMENT_OVERPAY",
        details={k: str(v) for k, v in details.items()},
    )


# ── Party resolution ─────────────────────────────────────────

def allowed_parties(shipment: Shipment, component: str) -> list[tuple[str, str]]:
    """(party_type, party_id) pairs that may receive this component's payment.

    Suppliers on the shipment's items can be paid for goods; the
    shipment's shipping company can be paid for goods and for every
    shipping-side component.
    """
    candidates = []
    if component not in SHIPPING_COMPONENTS:
        for item in shipment.items:
            pair = ("supplier", item.supplier_id)
            if item.supplier_id and pair not in candidates:
                candidates.append(pair)
    if shipment.shipping_company_id:
        candidates.append(("shipping_company", shipment.shipping_company_id))
    return candidates


def resolve_party(
    shipment: Shipment,
    component: str,
    party_type: str | None,
    party_id: str | None,
) -> tuple[str | None, str | None]:
    """Default the party when only one is possible and reject mismatches."""
    candidates = allowed_parties(shipment, component)

    if party_type is None and party_id is None and len(candidates) == 1:
        return candidates[0]

    if candidates and (party_type is None or party_id is None):
        raise ValidationError(
            "A party linked to this shipment is required",
            field="party_id",
            error_code="PARTY_REQUIRED",
        )
    if party_type is not None and (party_type, party_id) not in candidates:
        raise ValidationError(
            "The selected party is not linked to this shipment",
            field="party_id",
            error_code="PARTY_MISMATCH",
        )
    return party_type or "supplier", party_id


# ── Pricing ──────────────────────────────────────────────────

async def payment_rate(db: AsyncSession, shipment: Shipment, currency: str, given: Decimal | None) -> Decimal:
    """Rate to EGP recorded on the payment.

    RMB and USD fall back to the latest stored rate; EGP payments record
    the shipment's purchase rate so their RMB equivalent stays fixed.
    """
    if given is not None:
        if given <= 0:
            raise ValidationError(
                "Exchange rate must be greater than zero",
                field="exchange_rate_to_egp",
                error_code="PAYMENT_RATE_MISSING",
            )
        return given
    if currency == "EGP":
        return to_decimal(shipment.purchase_rmb_to_egp_rate)
    stored = await latest_rate(db, currency, "EGP")
    if stored is None:
        raise ValidationError(
            f"No {currency} to EGP exchange rate supplied or stored",
            field="exchange_rate_to_egp",
            error_code="PAYMENT_RATE_MISSING",
        )
    return stored


def amount_in_egp(amount: Decimal, currency: str, rate: Decimal) -> Decimal:
    return round2(convert(amount, currency, "EGP", rate))


def _to_component_currency(
    currency: str, amount_original, amount_egp, rate, target: str, purchase_rate
) -> Decimal:
    """Express a payment in its cost component's currency.

    EGP payments carry their own RMB→EGP rate; other currencies go
    through EGP at the shipment's purchase rate.
    """
    if target == "EGP":
        return to_decimal(amount_egp)
    if currency == "RMB":
        return to_decimal(amount_original)
    rate = to_decimal(rate if currency == "EGP" else purchase_rate)
    return to_decimal(amount_egp) / rate if rate > 0 else ZERO


# ── Guards ───────────────────────────────────────────────────

def party_component_remaining(
    shipment: Shipment,
    payments: list[ShipmentPayment],
    party_type: str,
    party_id: str,
    component: str,
) -> tuple[str, Decimal, Decimal]:
    """(currency, total allowed, paid so far) for one party and component."""
    currency = component_currency(component)

    if should_use_supplier_goods_summary(party_type, component):
        allocations = [a for p in payments for a in p.allocations]
        summary = supplier_goods_summary(party_id, shipment.items, payments, allocations)
        return currency, summary.goods_total_rmb, summary.paid_rmb

    goods = max(ZERO, to_decimal(shipment.purchase_cost_rmb) - to_decimal(shipment.partial_discount_rmb))
    totals = {
        GOODS_COST: goods,
        "shipping": to_decimal(shipment.shipping_cost_rmb),
        "commission": to_decimal(shipment.commission_cost_rmb),
        "customs": to_decimal(shipment.customs_cost_egp),
        "takhreeg": to_decimal(shipment.takhreeg_cost_egp),
        "customs_takhreeg": to_decimal(shipment.customs_cost_egp) + to_decimal(shipment.takhreeg_cost_egp),
    }
    paid = ZERO
    for p in payments:
        if p.party_type != party_type or p.party_id != party_id or p.cost_component != component:
            continue
        paid += _to_component_currency(
            p.payment_currency, p.amount_original, p.amount_egp, p.exchange_rate_to_egp, currency,
            shipment.purchase_rmb_to_egp_rate,
        )
    return currency, totals.get(component, ZERO), paid


def check_overpay(
    shipment: Shipment,
    payments: list[ShipmentPayment],
    party_type: str | None,
    party_id: str | None,
    component: str,
    currency: str,
    amount_original: Decimal,
    amount_egp: Decimal,
    rate: Decimal,
) -> None:
    if party_type and party_id:
        comp_currency, allowed, paid = party_component_remaining(
            shipment, payments, party_type, party_id, component
        )
        remaining = max(ZERO, allowed - paid)
        if remaining <= 0:
            raise _overpay(
                "Nothing remains to be paid for this party and cost component",
                currency=comp_currency, total_allowed=round2(allowed), paid_so_far=round2(paid),
            )
        amount = _to_component_currency(
            currency, amount_original, amount_egp, rate, comp_currency,
            shipment.purchase_rmb_to_egp_rate,
        )
        if amount > remaining + EPSILON:
            raise _overpay(
                "Payment exceeds the remaining amount for this party and cost component",
                currency=comp_currency, remaining=round2(remaining), amount=round2(amount),
            )

    remaining_egp = max(ZERO, to_decimal(shipment.final_total_cost_egp) - to_decimal(shipment.total_paid_egp))
    if amount_egp - remaining_egp > Decimal("0.01"):
        raise _overpay(
            "Payment exceeds the shipment's remaining balance",
            remaining_egp=round2(remaining_egp), amount_egp=amount_egp,
        )


# ── Create ───────────────────────────────────────────────────

async def create_payment(
    db: AsyncSession,
    body: PaymentCreate,
    user: User,
    attachment: dict | None = None,
) -> ShipmentPayment:
    """Record a payment (and its allocations) against a shipment.

    `attachment` carries metadata of a file the router already stored;
    it takes precedence over attachment fields in the body.

    Raises:
        NotFoundError: unknown shipment.
        ConflictError: archived shipment (SHIPMENT_LOCKED).
        ValidationError: party, rate, overpay or allocation failures.
    """
    shipment = await get_shipment(db, body.shipment_id, for_update=True)
    ensure_unlocked(shipment)

    party_type, party_id = resolve_party(shipment, body.cost_component, body.party_type, body.party_id)
    rate = await payment_rate(db, shipment, body.payment_currency, body.exchange_rate_to_egp)
    amount_egp = amount_in_egp(body.amount_original, body.payment_currency, rate)

    payments = await shipment_payments(db, shipment.id)
    check_overpay(
        shipment, payments, party_type, party_id, body.cost_component,
        body.payment_currency, body.amount_original, amount_egp, rate,
    )

    allocations: list[tuple[str, Decimal]] = []
    if body.auto_allocate:
        if not can_auto_allocate_payment(
            body.cost_component, party_type, shipment.id, party_id, body.payment_currency
        ):
            raise ValidationError(
                "Auto-allocation needs an RMB goods payment to the shipment's shipping company",
                field="auto_allocate",
                error_code="AUTO_ALLOCATION_NOT_ELIGIBLE",
            )
        outstanding = build_supplier_outstanding(
            shipment.items, payments, [a for p in payments for a in p.allocations]
        )
        result = allocate_shipment_goods_payment(body.amount_original, outstanding)
        allocations = result.allocations

    meta = attachment or {
        "attachment_url": body.attachment_url,
        "attachment_original_name": body.attachment_original_name,
        "attachment_mime_type": body.attachment_mime_type,
        "attachment_size": body.attachment_size,
    }
    has_attachment = bool(meta.get("attachment_url"))

    payment = ShipmentPayment(
        payment_ref=await generate_code(db, "payment", on=body.payment_date.date()),
        shipment_id=shipment.id,
        party_type=party_type,
        party_id=party_id,
        payment_date=body.payment_date,
        payment_currency=body.payment_currency,
        amount_original=round2(body.amount_original),
        exchange_rate_to_egp=rate,
        amount_egp=amount_egp,
        cost_component=body.cost_component,
        payment_method=body.payment_method,
        cash_receiver_name=body.cash_receiver_name,
        reference_number=body.reference_number,
        note=body.note,
        attachment_url=meta.get("attachment_url"),
        attachment_original_name=meta.get("attachment_original_name"),
        attachment_mime_type=meta.get("attachment_mime_type"),
        attachment_size=meta.get("attachment_size"),
        attachment_uploaded_at=datetime.utcnow() if has_attachment else None,
        created_by=user.id,
    )
    payment.allocations = [
        PaymentAllocation(
            shipment_id=shipment.id,
            supplier_id=supplier_id,
            component=GOODS_COST,
            currency="RMB",
            allocated_amount=amount,
            created_by=user.id,
        )
        for supplier_id, amount in allocations
    ]
    db.add(payment)
    await db.flush()

    await refresh_payment_totals(db, shipment)
    await db.flush()

    await log_activity(
        db, user,
        action="created",
        entity_type="payment",
        entity_id=payment.id,
        entity_code=payment.payment_ref,
        summary=f"Recorded {payment.payment_currency} {payment.amount_original} payment on {shipment.shipment_code}",
        details={
            "shipment_id": shipment.id,
            "party_type": party_type,
            "party_id": party_id,
            "amount_egp": str(amount_egp),
            "method": payment.payment_method,
            "has_attachment": has_attachment,
        },
    )
    if allocations:
        await log_activity(
            db, user,
            action="auto_allocated",
            entity_type="payment",
            entity_id=payment.id,
            entity_code=payment.payment_ref,
            summary=f"Allocated {payment.amount_original} RMB across {len(allocations)} supplier(s)",
            details={"allocations": [{"supplier_id": s, "amount": str(a)} for s, a in allocations]},
        )
    logger.info("Payment %s recorded on %s", payment.payment_ref, shipment.shipment_code)
    return await get_payment(db, payment.id)


# ── Read / update / delete ───────────────────────────────────

async def get_payment(db: AsyncSession, payment_id: str) -> ShipmentPayment:
    result = await db.execute(
        select(ShipmentPayment)
        .where(ShipmentPayment.id == payment_id)
        .execution_options(populate_existing=True)
    )
    payment = result.scalar_one_or_none()
    if not payment:
        raise NotFoundError("Payment", payment_id)
    return payment


def allocation_summary(payment: ShipmentPayment) -> dict:
    return {
        "exists": bool(payment.allocations),
        "count": len(payment.allocations),
        "total_allocated": round2(sum((to_decimal(a.allocated_amount) for a in payment.allocations), ZERO)),
    }


async def finalize_attachment(
    db: AsyncSession, payment_id: str, body: AttachmentFinalize, user: User
) -> ShipmentPayment:
    """The only change allowed on a recorded payment: its attachment metadata."""
    payment = await get_payment(db, payment_id)
    payment.attachment_url = body.attachment_url
    payment.attachment_original_name = body.attachment_original_name
    payment.attachment_mime_type = body.attachment_mime_type
    payment.attachment_size = body.attachment_size
    payment.attachment_uploaded_at = datetime.utcnow()
    await db.flush()

    await log_activity(
        db, user,
        action="updated",
        entity_type="payment",
        entity_id=payment.id,
        entity_code=payment.payment_ref,
        summary="Attached payment receipt",
    )
    return await get_payment(db, payment.id)


async def delete_payment(db: AsyncSession, payment_id: str, user: User) -> dict:
    payment = await get_payment(db, payment_id)
    shipment = await get_shipment(db, payment.shipment_id, for_update=True)
    ensure_unlocked(shipment)

    allocations_deleted = len(payment.allocations)
    ref = payment.payment_ref
    await db.delete(payment)
    await db.flush()

    await refresh_payment_totals(db, shipment)
    await db.flush()

    await log_activity(
        db, user,
        action="deleted",
        entity_type="payment",
        entity_id=payment_id,
        entity_code=ref,
        summary=f"Deleted payment {ref} from {shipment.shipment_code}",
        details={"allocations_deleted": allocations_deleted},
    )
    return {"deleted": True, "allocations_deleted": allocations_deleted}
