"""Local trade: parties and seasons, invoices, payments, return cases,
collection schedules and due-collection notifications.

Party balances are never stored.  Every read rebuilds the ledger from
the opening balance and the party's invoices, payments and resolved
return cases through `services.ledger`.
"""

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.middleware.exceptions import ConflictError, NotFoundError, ValidationError
from tradeledger.models.collection import PartyCollection
from tradeledger.models.inventory_movement import InventoryMovement
from tradeledger.models.local_trade import (
    LocalInvoice,
    LocalInvoiceLine,
    LocalPayment,
    LocalReceipt,
)
from tradeledger.models.notification import Notification
from tradeledger.models.party import Party, PartySeason
from tradeledger.models.return_case import ReturnCase
from tradeledger.models.user import User
from tradeledger.schemas.local_trade import (
    INVOICE_KIND_LABELS,
    CollectionsUpsert,
    CollectionStatusUpdate,
    InvoiceCreate,
    InvoiceLineIn,
    InvoiceReceive,
    InvoiceUpdate,
    LocalPaymentCreate,
    PartyCreate,
    PartyUpdate,
    ReturnCaseCreate,
    ReturnCaseResolve,
)
from tradeledger.services.currency import ZERO, round2, to_decimal
from tradeledger.services.ledger import LedgerResult, build_events, compute_balance
from tradeledger.services.returns import PENDING, resolve_return_case
from tradeledger.utils.activity import log_activity
from tradeledger.utils.numbering import generate_code

logger = logging.getLogger(__name__)

FIRST_SEASON_NAME = "الموسم الأول"
DOZEN = 12
UNIT_COST_PLACES = Decimal("0.0001")


# ── Loading ──────────────────────────────────────────────────

async def get_party(db: AsyncSession, party_id: str) -> Party:
    stmt = (
        select(Party)
        .where(Party.id == party_id)
        .execution_options(populate_existing=True)
    )
    party = (await db.execute(stmt)).scalar_one_or_none()
    if not party:
        raise NotFoundError("Party", party_id)
    return party


async def get_current_season(db: AsyncSession, party_id: str) -> PartySeason | None:
    return (await db.execute(
        select(PartySeason).where(
            PartySeason.party_id == party_id,
            PartySeason.is_current.is_(True),
        )
    )).scalar_one_or_none()


async def get_invoice(db: AsyncSession, invoice_id: str) -> LocalInvoice:
    stmt = (
        select(LocalInvoice)
        .where(LocalInvoice.id == invoice_id)
        .execution_options(populate_existing=True)
    )
    invoice = (await db.execute(stmt)).scalar_one_or_none()
    if not invoice:
        raise NotFoundError("Invoice", invoice_id)
    return invoice


async def get_return_case(db: AsyncSession, case_id: str) -> ReturnCase:
    case = await db.get(ReturnCase, case_id)
    if not case:
        raise NotFoundError("Return case", case_id)
    return case


async def get_collection(db: AsyncSession, collection_id: str) -> PartyCollection:
    collection = await db.get(PartyCollection, collection_id)
    if not collection:
        raise NotFoundError("Collection", collection_id)
    return collection


# ── Balances ─────────────────────────────────────────────────

async def _history(db: AsyncSession, party_ids: list[str], season_id: str | None = None):
    """Invoices, payments and resolved return cases grouped by party."""
    grouped = defaultdict(lambda: {"invoices": [], "payments": [], "returns": []})
    if not party_ids:
        return grouped

    queries = (
        ("invoices", select(LocalInvoice).where(LocalInvoice.party_id.in_(party_ids)), LocalInvoice),
        ("payments", select(LocalPayment).where(LocalPayment.party_id.in_(party_ids)), LocalPayment),
        (
            "returns",
            select(ReturnCase).where(
                ReturnCase.party_id.in_(party_ids),
                ReturnCase.status == "resolved",
            ),
            ReturnCase,
        ),
    )
    for key, stmt, model in queries:
        if season_id is not None:
            stmt = stmt.where(model.season_id == season_id)
        for row in (await db.execute(stmt)).scalars().all():
            grouped[row.party_id][key].append(row)
    return grouped


def _ledger_for(party: Party, history: dict, include_opening: bool = True) -> LedgerResult:
    events = build_events(
        invoices=history["invoices"],
        payments=history["payments"],
        return_cases=history["returns"],
        opening_balance=party.opening_balance_egp if include_opening else None,
        opening_balance_type=party.opening_balance_type,
    )
    return compute_balance(events)


async def party_ledger(
    db: AsyncSession, party: Party, season_id: str | None = None, as_of: date | None = None,
) -> LedgerResult:
    """Running ledger for a party, optionally limited to one season.

    The opening balance belongs to the first season only.
    """
    include_opening = True
    if season_id is not None:
        season = await db.get(PartySeason, season_id)
        if not season or season.party_id != party.id:
            raise NotFoundError("Season", season_id)
        include_opening = season.season_number == 1

    history = (await _history(db, [party.id], season_id))[party.id]
    result = _ledger_for(party, history, include_opening)
    if as_of is not None:
        return compute_balance(result.events, as_of=as_of)
    return result


async def party_balance(db: AsyncSession, party: Party) -> LedgerResult:
    return await party_ledger(db, party)


def party_out(party: Party, ledger: LedgerResult) -> dict:
    current = next((s for s in party.seasons if s.is_current), None)
    return {
        **{c.name: getattr(party, c.name) for c in Party.__table__.columns},
        "balance_egp": ledger.balance_egp,
        "balance_direction": ledger.direction,
        "current_season": current,
    }


# ── Parties ──────────────────────────────────────────────────

async def list_parties(
    db: AsyncSession,
    party_type: str | None = None,
    search: str | None = None,
    is_active: bool | None = None,
) -> list[dict]:
    stmt = select(Party).order_by(Party.name)
    if party_type:
        # "both" parties show up under either filter
        stmt = stmt.where(Party.type.in_([party_type, "both"]))
    if search:
        stmt = stmt.where(Party.name.ilike(f"%{search}%"))
    if is_active is not None:
        stmt = stmt.where(Party.is_active.is_(is_active))
    parties = (await db.execute(stmt)).scalars().all()

    history = await _history(db, [p.id for p in parties])
    return [party_out(p, _ledger_for(p, history[p.id])) for p in parties]


async def create_party(db: AsyncSession, body: PartyCreate, user: User) -> Party:
    """Create a party together with its first, current season."""
    party = Party(
        id=str(uuid.uuid4()),
        created_by=user.id,
        **body.model_dump(),
    )
    if party.credit_limit_mode == "unlimited":
        party.credit_limit_amount_egp = None
    db.add(party)
    db.add(PartySeason(
        party_id=party.id,
        season_number=1,
        season_name=FIRST_SEASON_NAME,
        is_current=True,
    ))
    await db.flush()

    await log_activity(
        db, user,
        action="created",
        entity_type="party",
        entity_id=party.id,
        entity_code=party.name,
        summary=f"Created {party.type} {party.name}",
        details={"opening_balance_egp": str(party.opening_balance_egp),
                 "opening_balance_type": party.opening_balance_type},
    )
    return await get_party(db, party.id)


async def update_party(db: AsyncSession, party_id: str, body: PartyUpdate, user: User) -> Party:
    party = await get_party(db, party_id)
    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(party, field, value)
    if party.credit_limit_mode == "limited" and party.credit_limit_amount_egp is None:
        raise ValidationError(
            "credit_limit_amount_egp is required when credit is limited",
            field="credit_limit_amount_egp",
        )
    await db.flush()

    await log_activity(
        db, user,
        action="updated",
        entity_type="party",
        entity_id=party.id,
        entity_code=party.name,
        summary=f"Updated party {party.name}",
        details={k: str(v) if isinstance(v, Decimal) else v for k, v in changes.items()},
    )
    return await get_party(db, party.id)


async def list_seasons(db: AsyncSession, party_id: str) -> list[PartySeason]:
    await get_party(db, party_id)
    result = await db.execute(
        select(PartySeason)
        .where(PartySeason.party_id == party_id)
        .order_by(PartySeason.season_number.desc())
    )
    return list(result.scalars().all())


async def settle_party(db: AsyncSession, party_id: str, user: User) -> LocalInvoice:
    """Close the current season with a zero settlement invoice and open
    the next one.  The party balance must be exactly zero."""
    party = await get_party(db, party_id)
    season = await get_current_season(db, party_id)
    if not season:
        raise ValidationError("Party has no current season", error_code="NO_CURRENT_SEASON")

    ledger = await party_balance(db, party)
    if ledger.balance != 0:
        raise ValidationError(
            "Balance must be zero before settlement",
            error_code="SETTLEMENT_BALANCE_NOT_ZERO",
            details={"current_balance": str(ledger.balance_egp), "direction": ledger.direction},
        )

    today = date.today()
    invoice = LocalInvoice(
        id=str(uuid.uuid4()),
        reference_number=await generate_code(db, "settlement", on=today),
        invoice_kind="settlement",
        party_id=party.id,
        season_id=season.id,
        invoice_date=today,
        status="posted",
        total_cartons=0,
        total_pieces=0,
        subtotal_egp=ZERO,
        discount_egp=ZERO,
        total_egp=ZERO,
        notes="فاتورة تسوية",
        created_by=user.id,
    )
    db.add(invoice)

    season.is_current = False
    season.ended_at = datetime.utcnow()
    season.closed_by = user.id
    db.add(PartySeason(
        party_id=party.id,
        season_number=season.season_number + 1,
        season_name=f"موسم {today.year}",
        is_current=True,
    ))
    await db.flush()

    await log_activity(
        db, user,
        action="settled",
        entity_type="party",
        entity_id=party.id,
        entity_code=invoice.reference_number,
        summary=f"Settled season {season.season_name} for {party.name}",
    )
    logger.info("Party %s settled, season %s closed", party.id, season.season_number)
    return await get_invoice(db, invoice.id)


# ── Invoices ─────────────────────────────────────────────────

@dataclass
class PricedLine:
    line_no: int
    body: InvoiceLineIn
    total_pieces: int
    line_total_egp: Decimal


def price_invoice_lines(lines: list[InvoiceLineIn]) -> tuple[list[PricedLine], Decimal]:
    """Compute line totals and the invoice subtotal.

    Dozen lines are priced per dozen and must hold whole dozens.

    Raises:
        ValidationError: a dozen line whose pieces are not divisible by 12.
    """
    priced: list[PricedLine] = []
    subtotal = ZERO
    for n, line in enumerate(lines, start=1):
        pieces = line.total_pieces
        if pieces is None:
            pieces = line.cartons * line.pieces_per_carton
        if line.unit_mode == "dozen":
            if pieces % DOZEN != 0:
                raise ValidationError(
                    f"Quantity {pieces} is not a whole number of dozens",
                    field=f"lines[{n - 1}].total_pieces",
                    error_code="DOZEN_QUANTITY_INVALID",
                )
            units = Decimal(pieces // DOZEN)
        else:
            units = Decimal(pieces)
        total = round2(units * to_decimal(line.unit_price_egp))
        priced.append(PricedLine(line_no=n, body=line, total_pieces=pieces, line_total_egp=total))
        subtotal += total
    return priced, subtotal


def check_credit_limit(party: Party, balance: Decimal, invoice_kind: str, invoice_total: Decimal) -> None:
    """Reject a purchase invoice that would push a limited-credit party
    past its limit."""
    if invoice_kind != "purchase":
        return
    if party.payment_terms != "credit" or party.credit_limit_mode != "limited":
        return
    limit = to_decimal(party.credit_limit_amount_egp)
    if balance + invoice_total > limit:
        raise ValidationError(
            "Credit limit exceeded",
            error_code="CREDIT_LIMIT_EXCEEDED",
            details={
                "current_balance": str(round2(balance)),
                "invoice_total": str(round2(invoice_total)),
                "credit_limit": str(round2(limit)),
            },
        )


async def next_reference(db: AsyncSession, invoice_kind: str = "purchase", on: date | None = None) -> str:
    if invoice_kind not in INVOICE_KIND_LABELS:
        raise ValidationError(f"Unknown invoice kind: {invoice_kind}", field="kind")
    return await generate_code(db, invoice_kind, on=on)


async def list_invoices(
    db: AsyncSession,
    party_id: str | None = None,
    invoice_kind: str | None = None,
    status: str | None = None,
) -> list[LocalInvoice]:
    stmt = select(LocalInvoice).order_by(LocalInvoice.invoice_date.desc(), LocalInvoice.created_at.desc())
    if party_id:
        stmt = stmt.where(LocalInvoice.party_id == party_id)
    if invoice_kind:
        stmt = stmt.where(LocalInvoice.invoice_kind == invoice_kind)
    if status:
        stmt = stmt.where(LocalInvoice.status == status)
    return list((await db.execute(stmt)).scalars().all())


async def create_invoice(db: AsyncSession, body: InvoiceCreate, user: User) -> LocalInvoice:
    party = await get_party(db, body.party_id)
    if not party.is_active:
        raise ValidationError("Party is inactive", field="party_id")

    priced, subtotal = price_invoice_lines(body.lines)
    discount = round2(body.discount_egp)
    if discount > subtotal:
        raise ValidationError("Discount cannot exceed the invoice subtotal", field="discount_egp")
    total = round2(subtotal - discount)

    ledger = await party_balance(db, party)
    check_credit_limit(party, ledger.balance, body.invoice_kind, total)

    reference = body.reference_number
    if reference:
        taken = await db.scalar(
            select(LocalInvoice.id).where(LocalInvoice.reference_number == reference)
        )
        if taken:
            raise ConflictError(f"Reference number {reference} already exists", error_code="DUPLICATE_REFERENCE")
    else:
        reference = await generate_code(db, body.invoice_kind, on=body.invoice_date)

    season = await get_current_season(db, party.id)
    invoice = LocalInvoice(
        id=str(uuid.uuid4()),
        reference_number=reference,
        invoice_kind=body.invoice_kind,
        party_id=party.id,
        season_id=season.id if season else None,
        invoice_date=body.invoice_date,
        status="pending",
        total_cartons=sum(p.body.cartons for p in priced),
        total_pieces=sum(p.total_pieces for p in priced),
        subtotal_egp=round2(subtotal),
        discount_egp=discount,
        total_egp=total,
        notes=body.notes,
        created_by=user.id,
    )
    invoice.lines = [
        LocalInvoiceLine(
            line_no=p.line_no,
            product_name=p.body.product_name,
            product_type=p.body.product_type,
            cartons=p.body.cartons,
            pieces_per_carton=p.body.pieces_per_carton,
            total_pieces=p.total_pieces,
            unit_mode=p.body.unit_mode,
            unit_price_egp=p.body.unit_price_egp,
            line_total_egp=p.line_total_egp,
        )
        for p in priced
    ]
    db.add(invoice)
    await db.flush()

    await log_activity(
        db, user,
        action="created",
        entity_type="invoice",
        entity_id=invoice.id,
        entity_code=invoice.reference_number,
        summary=f"{INVOICE_KIND_LABELS[invoice.invoice_kind]} {invoice.reference_number} for {party.name}",
        details={"invoice_kind": invoice.invoice_kind, "total_egp": str(invoice.total_egp)},
    )
    return await get_invoice(db, invoice.id)


async def update_invoice(db: AsyncSession, invoice_id: str, body: InvoiceUpdate, user: User) -> LocalInvoice:
    invoice = await get_invoice(db, invoice_id)
    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(invoice, field, value)
    await db.flush()

    await log_activity(
        db, user,
        action="updated",
        entity_type="invoice",
        entity_id=invoice.id,
        entity_code=invoice.reference_number,
        details={k: str(v) for k, v in changes.items()},
    )
    return await get_invoice(db, invoice.id)


async def receive_invoice(db: AsyncSession, invoice_id: str, body: InvoiceReceive, user: User) -> dict:
    """Mark an invoice received.  Purchase invoices book their lines into
    inventory at the invoiced unit price."""
    invoice = await get_invoice(db, invoice_id)
    if invoice.invoice_kind == "settlement":
        raise ValidationError("Settlement invoices cannot be received", error_code="INVOICE_NOT_RECEIVABLE")
    if invoice.status == "received":
        raise ConflictError("Invoice is already received", error_code="INVOICE_ALREADY_RECEIVED")

    when = body.received_at or datetime.utcnow()
    invoice.status = "received"
    receipt = LocalReceipt(
        id=str(uuid.uuid4()),
        invoice_id=invoice.id,
        receiving_status="received",
        received_at=when,
        received_by=user.id,
        notes=body.notes,
    )
    db.add(receipt)

    movements = 0
    if invoice.invoice_kind == "purchase":
        for line in invoice.lines:
            if line.total_pieces <= 0:
                continue
            unit_cost = (to_decimal(line.line_total_egp) / line.total_pieces).quantize(UNIT_COST_PLACES)
            db.add(InventoryMovement(
                source_type="local_receipt",
                source_id=receipt.id,
                product_name=line.product_name,
                total_pieces_in=line.total_pieces,
                unit_cost_egp=unit_cost,
                total_cost_egp=line.line_total_egp,
                movement_date=when.date(),
            ))
            movements += 1
    await db.flush()

    await log_activity(
        db, user,
        action="received",
        entity_type="invoice",
        entity_id=invoice.id,
        entity_code=invoice.reference_number,
        details={"movements_created": movements},
    )
    return {
        "invoice": await get_invoice(db, invoice.id),
        "receipt": receipt,
        "movements_created": movements,
    }


# ── Payments ─────────────────────────────────────────────────

async def list_local_payments(db: AsyncSession, party_id: str | None = None) -> list[LocalPayment]:
    stmt = select(LocalPayment).order_by(LocalPayment.payment_date.desc(), LocalPayment.created_at.desc())
    if party_id:
        stmt = stmt.where(LocalPayment.party_id == party_id)
    return list((await db.execute(stmt)).scalars().all())


async def create_local_payment(db: AsyncSession, body: LocalPaymentCreate, user: User) -> LocalPayment:
    party = await get_party(db, body.party_id)
    season = await get_current_season(db, party.id)
    payment = LocalPayment(
        id=str(uuid.uuid4()),
        season_id=season.id if season else None,
        created_by=user.id,
        **body.model_dump(),
    )
    payment.amount_egp = round2(payment.amount_egp)
    db.add(payment)
    await db.flush()

    await log_activity(
        db, user,
        action="created",
        entity_type="local_payment",
        entity_id=payment.id,
        entity_code=payment.reference_number,
        summary=f"Payment of {payment.amount_egp} EGP from {party.name}",
    )
    return payment


# ── Return cases ─────────────────────────────────────────────

async def list_return_cases(
    db: AsyncSession,
    party_id: str | None = None,
    invoice_id: str | None = None,
    status: str | None = None,
) -> list[ReturnCase]:
    stmt = select(ReturnCase).order_by(ReturnCase.created_at.desc())
    if party_id:
        stmt = stmt.where(ReturnCase.party_id == party_id)
    if invoice_id:
        stmt = stmt.where(ReturnCase.invoice_id == invoice_id)
    if status:
        stmt = stmt.where(ReturnCase.status == status)
    return list((await db.execute(stmt)).scalars().all())


async def create_return_case(db: AsyncSession, body: ReturnCaseCreate, user: User) -> ReturnCase:
    party = await get_party(db, body.party_id)
    if body.invoice_id:
        invoice = await get_invoice(db, body.invoice_id)
        if invoice.party_id != party.id:
            raise ValidationError("Invoice belongs to another party", field="invoice_id")

    season = await get_current_season(db, party.id)
    case = ReturnCase(
        id=str(uuid.uuid4()),
        season_id=season.id if season else None,
        status=PENDING,
        created_by=user.id,
        **body.model_dump(),
    )
    db.add(case)
    await db.flush()

    await log_activity(
        db, user,
        action="created",
        entity_type="return_case",
        entity_id=case.id,
        summary=f"Return case for {party.name}",
        details={"pieces": case.pieces, "cartons": case.cartons},
    )
    return case


async def resolve_case(db: AsyncSession, case_id: str, body: ReturnCaseResolve, user: User) -> ReturnCase:
    """Resolve a pending case.  An accepted return puts its pieces back
    into stock at the linked invoice's average unit price."""
    case = await get_return_case(db, case_id)
    resolve_return_case(
        case,
        body.margin_egp,
        resolution=body.resolution,
        resolution_note=body.resolution_note,
        resolved_by=user.id,
    )
    if body.pieces is not None:
        case.pieces = body.pieces
    if body.cartons is not None:
        case.cartons = body.cartons

    if case.resolution == "accepted_return" and case.pieces > 0:
        unit_cost = ZERO
        if case.invoice_id:
            invoice = await get_invoice(db, case.invoice_id)
            if invoice.total_pieces:
                unit_cost = to_decimal(invoice.total_egp) / invoice.total_pieces
        db.add(InventoryMovement(
            source_type="return_case",
            source_id=case.id,
            total_pieces_in=case.pieces,
            unit_cost_egp=unit_cost.quantize(UNIT_COST_PLACES),
            total_cost_egp=round2(unit_cost * case.pieces),
            movement_date=case.resolved_at.date(),
        ))
    await db.flush()

    await log_activity(
        db, user,
        action="resolved",
        entity_type="return_case",
        entity_id=case.id,
        summary=f"Resolved return case as {case.resolution}",
        details={"margin_egp": str(case.margin_egp), "pieces": case.pieces},
    )
    return case


# ── Collections ──────────────────────────────────────────────

async def list_collections(db: AsyncSession, party_id: str) -> list[PartyCollection]:
    result = await db.execute(
        select(PartyCollection)
        .where(PartyCollection.party_id == party_id)
        .order_by(PartyCollection.collection_order)
    )
    return list(result.scalars().all())


async def upsert_collections(
    db: AsyncSession, party_id: str, body: CollectionsUpsert, user: User,
) -> list[PartyCollection]:
    """Create or replace scheduled collections by their order (1-4)."""
    party = await get_party(db, party_id)
    existing = {c.collection_order: c for c in await list_collections(db, party_id)}
    for item in body.collections:
        row = existing.get(item.collection_order)
        if row is None:
            row = PartyCollection(party_id=party.id, collection_order=item.collection_order)
            db.add(row)
            existing[item.collection_order] = row
        row.collection_date = item.collection_date
        row.amount_egp = item.amount_egp
        row.notes = item.notes
    await db.flush()

    await log_activity(
        db, user,
        action="updated",
        entity_type="collection",
        entity_id=party.id,
        entity_code=party.name,
        summary=f"Scheduled {len(body.collections)} collection(s) for {party.name}",
    )
    return await list_collections(db, party_id)


async def update_collection_status(
    db: AsyncSession, collection_id: str, body: CollectionStatusUpdate, user: User,
) -> PartyCollection:
    collection = await get_collection(db, collection_id)
    collection.status = body.status
    collection.collected_at = datetime.utcnow() if body.status == "collected" else None
    collection.linked_payment_id = body.linked_payment_id
    await db.flush()

    await log_activity(
        db, user,
        action="updated",
        entity_type="collection",
        entity_id=collection.id,
        summary=f"Collection {collection.collection_order} marked {body.status}",
    )
    return collection


async def mark_reminder_sent(db: AsyncSession, collection_id: str) -> PartyCollection:
    collection = await get_collection(db, collection_id)
    collection.reminder_sent = True
    collection.reminder_sent_at = datetime.utcnow()
    await db.flush()
    return collection


async def delete_collection(db: AsyncSession, collection_id: str, user: User) -> None:
    collection = await get_collection(db, collection_id)
    await db.delete(collection)
    await log_activity(
        db, user,
        action="deleted",
        entity_type="collection",
        entity_id=collection_id,
        summary=f"Deleted collection {collection.collection_order}",
    )


# ── Profile, summary, timeline ───────────────────────────────

async def party_profile(db: AsyncSession, party_id: str) -> dict:
    party = await get_party(db, party_id)
    ledger = await party_balance(db, party)
    history = (await _history(db, [party.id]))[party.id]
    open_cases = await list_return_cases(db, party_id=party.id, status=PENDING)

    out = party_out(party, ledger)
    return {
        "party": out,
        "current_season": out["current_season"],
        "balance": {"balance_egp": ledger.balance_egp, "direction": ledger.direction},
        "total_invoices": len(history["invoices"]),
        "total_payments": len(history["payments"]),
        "open_return_cases": len(open_cases),
    }


async def party_summary(db: AsyncSession, party_id: str, season_id: str | None = None) -> dict:
    """KPIs for one season (the current one by default)."""
    party = await get_party(db, party_id)
    if season_id is None:
        season = await get_current_season(db, party.id)
        season_id = season.id if season else None

    history = (await _history(db, [party.id], season_id))[party.id]
    ledger = await party_balance(db, party)

    billed = [i for i in history["invoices"] if i.invoice_kind in ("purchase", "sale")]
    all_invoices = await list_invoices(db, party_id=party.id)
    all_payments = await list_local_payments(db, party_id=party.id)
    collections = await list_collections(db, party.id)
    collected = [c.collection_date for c in collections if c.status == "collected"]

    return {
        "party_id": party.id,
        "season_id": season_id,
        "total_invoices_egp": round2(sum((to_decimal(i.total_egp) for i in billed), ZERO)),
        "invoices_count": len(billed),
        "total_paid_egp": round2(sum((to_decimal(p.amount_egp) for p in history["payments"]), ZERO)),
        "payments_count": len(history["payments"]),
        "remaining_balance_egp": round2(max(ledger.balance, ZERO)),
        "credit_balance_egp": round2(abs(min(ledger.balance, ZERO))),
        "under_inspection_count": len(await list_return_cases(db, party_id=party.id, status=PENDING)),
        "last_invoice_date": all_invoices[0].invoice_date if all_invoices else None,
        "last_payment_date": all_payments[0].payment_date if all_payments else None,
        "last_collection_date": max(collected) if collected else None,
        "upcoming_collections": sum(1 for c in collections if c.status == "pending"),
    }


async def party_timeline(db: AsyncSession, party_id: str) -> list[dict]:
    """Invoices, payments, return cases and collections, newest first."""
    party = await get_party(db, party_id)
    entries = []
    for inv in await list_invoices(db, party_id=party.id):
        entries.append({
            "type": "invoice",
            "date": inv.invoice_date,
            "id": inv.id,
            "title": INVOICE_KIND_LABELS.get(inv.invoice_kind, inv.invoice_kind),
            "description": inv.notes,
            "amount": inv.total_egp,
            "status": inv.status,
            "reference_number": inv.reference_number,
        })
    for pay in await list_local_payments(db, party_id=party.id):
        entries.append({
            "type": "payment",
            "date": pay.payment_date,
            "id": pay.id,
            "title": "سداد",
            "description": pay.payment_method,
            "amount": pay.amount_egp,
            "status": None,
            "reference_number": pay.reference_number,
        })
    for case in await list_return_cases(db, party_id=party.id):
        entries.append({
            "type": "return",
            "date": case.created_at.date(),
            "id": case.id,
            "title": "حالة مرتجع",
            "description": case.description,
            "amount": case.margin_egp,
            "status": case.status,
            "reference_number": None,
        })
    for coll in await list_collections(db, party.id):
        entries.append({
            "type": "collection",
            "date": coll.collection_date,
            "id": coll.id,
            "title": f"موعد تحصيل {coll.collection_order}",
            "description": coll.notes,
            "amount": coll.amount_egp,
            "status": coll.status,
            "reference_number": None,
        })
    entries.sort(key=lambda e: e["date"], reverse=True)
    return entries


# ── Notifications ────────────────────────────────────────────

async def list_notifications(db: AsyncSession, user: User, unread_only: bool = False) -> list[Notification]:
    stmt = (
        select(Notification)
        .where((Notification.user_id == user.id) | Notification.user_id.is_(None))
        .order_by(Notification.created_at.desc())
    )
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    return list((await db.execute(stmt)).scalars().all())


async def mark_notification_read(db: AsyncSession, notification_id: str) -> Notification:
    notification = await db.get(Notification, notification_id)
    if not notification:
        raise NotFoundError("Notification", notification_id)
    notification.is_read = True
    await db.flush()
    return notification


async def check_due_collections(
    db: AsyncSession, user_id: str | None = None, today: date | None = None,
) -> int:
    """Raise a due/overdue notification for every pending collection dated
    today or earlier, at most once per collection per day.

    Returns the number of notifications created.
    """
    today = today or date.today()
    day_start = datetime.combine(today, time.min)
    rows = (await db.execute(
        select(PartyCollection, Party)
        .join(Party, Party.id == PartyCollection.party_id)
        .where(
            PartyCollection.status == "pending",
            PartyCollection.collection_date <= today,
        )
    )).all()

    created = 0
    for collection, party in rows:
        already = await db.scalar(
            select(Notification.id).where(
                Notification.reference_type == "collection",
                Notification.reference_id == collection.id,
                Notification.created_at >= day_start,
            ).limit(1)
        )
        if already:
            continue
        overdue = collection.collection_date < today
        db.add(Notification(
            user_id=user_id,
            type="collection_overdue" if overdue else "collection_due",
            title="تحصيل متأخر" if overdue else "موعد تحصيل اليوم",
            message=f"تحصيل بقيمة {collection.amount_egp or 0} ج.م من {party.name}",
            reference_type="collection",
            reference_id=collection.id,
        ))
        created += 1
    await db.flush()
    if created:
        logger.info("Raised %d collection notification(s)", created)
    return created
