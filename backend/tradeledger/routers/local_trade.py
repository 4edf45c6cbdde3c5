"""Local trade routes: parties, invoices, payments, return cases and
collection schedules.

Endpoints (prefix /api/local-trade):
    GET    /parties                              List with computed balances
    POST   /parties                              Create (opens the first season)
    GET    /parties/{id}                         One party
    PATCH  /parties/{id}                         Update
    GET    /parties/{id}/seasons                 Seasons, newest first
    POST   /parties/{id}/settlement              Close the season at zero balance
    GET    /parties/{id}/profile                 Party + balance + counts
    GET    /parties/{id}/summary                 Season KPIs
    GET    /parties/{id}/timeline                Everything, newest first
    GET    /parties/{id}/ledger                  Running balance entries
    GET    /parties/{id}/collections             Scheduled collections
    PUT    /parties/{id}/collections             Create/replace by order

    GET    /invoices/next-reference              Preview the next code
    GET    /invoices                             List
    POST   /invoices                             Create
    GET    /invoices/{id}                        One invoice with lines
    PATCH  /invoices/{id}                        Update date / notes
    POST   /invoices/{id}/receive                Receive (purchase → inventory)

    GET    /payments                             List
    POST   /payments                             Record a party payment

    GET    /return-cases                         List
    POST   /return-cases                         Open a case
    GET    /return-cases/{id}                    One case
    POST   /return-cases/{id}/resolve            Resolve a pending case

    PATCH  /collections/{id}/status              pending / collected / postponed
    PATCH  /collections/{id}/reminder            Mark reminder sent
    DELETE /collections/{id}                     Remove
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.auth.deps import require_permission
from tradeledger.database import get_db
from tradeledger.models.user import User
from tradeledger.schemas.common import MessageResponse
from tradeledger.schemas.local_trade import (
    CollectionOut,
    CollectionsUpsert,
    CollectionStatusUpdate,
    InvoiceCreate,
    InvoiceOut,
    InvoiceReceive,
    InvoiceReceiveOut,
    InvoiceUpdate,
    LedgerEntryOut,
    LocalPaymentCreate,
    LocalPaymentOut,
    NextReferenceOut,
    PartyCreate,
    PartyLedgerOut,
    PartyOut,
    PartyProfileOut,
    PartySummaryOut,
    PartyUpdate,
    ReturnCaseCreate,
    ReturnCaseOut,
    ReturnCaseResolve,
    SeasonOut,
    TimelineEntryOut,
)
from tradeledger.services import local_trade as svc

router = APIRouter()


async def _party_out(db: AsyncSession, party) -> PartyOut:
    ledger = await svc.party_balance(db, party)
    return PartyOut.model_validate(svc.party_out(party, ledger))


# ── Parties ──────────────────────────────────────────────────

@router.get("/parties", response_model=list[PartyOut])
async def list_parties(
    party_type: str | None = Query(None, alias="type"),
    search: str | None = Query(None),
    is_active: bool | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("parties.read")),
):
    return await svc.list_parties(db, party_type=party_type, search=search, is_active=is_active)


@router.post("/parties", response_model=PartyOut, status_code=status.HTTP_201_CREATED)
async def create_party(
    body: PartyCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("parties.write")),
):
    party = await svc.create_party(db, body, user)
    return await _party_out(db, party)


@router.get("/parties/{party_id}", response_model=PartyOut)
async def get_party(
    party_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("parties.read")),
):
    return await _party_out(db, await svc.get_party(db, party_id))


@router.patch("/parties/{party_id}", response_model=PartyOut)
async def update_party(
    party_id: str,
    body: PartyUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("parties.write")),
):
    party = await svc.update_party(db, party_id, body, user)
    return await _party_out(db, party)


@router.get("/parties/{party_id}/seasons", response_model=list[SeasonOut])
async def list_seasons(
    party_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("parties.read")),
):
    return await svc.list_seasons(db, party_id)


@router.post("/parties/{party_id}/settlement", response_model=InvoiceOut)
async def settle_party(
    party_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("parties.write")),
):
    """Close the current season.  Rejected unless the balance is zero."""
    return await svc.settle_party(db, party_id, user)


@router.get("/parties/{party_id}/profile", response_model=PartyProfileOut)
async def party_profile(
    party_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("parties.read")),
):
    return await svc.party_profile(db, party_id)


@router.get("/parties/{party_id}/summary", response_model=PartySummaryOut)
async def party_summary(
    party_id: str,
    season_id: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("parties.read")),
):
    return await svc.party_summary(db, party_id, season_id=season_id)


@router.get("/parties/{party_id}/timeline", response_model=list[TimelineEntryOut])
async def party_timeline(
    party_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("parties.read")),
):
    return await svc.party_timeline(db, party_id)


@router.get("/parties/{party_id}/ledger", response_model=PartyLedgerOut)
async def party_ledger(
    party_id: str,
    season_id: str | None = Query(None),
    as_of: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("parties.read")),
):
    party = await svc.get_party(db, party_id)
    ledger = await svc.party_ledger(db, party, season_id=season_id, as_of=as_of)
    return PartyLedgerOut(
        party_id=party.id,
        season_id=season_id,
        balance_egp=ledger.balance_egp,
        direction=ledger.direction,
        entries=[LedgerEntryOut.model_validate(e) for e in ledger.events],
    )


@router.get("/parties/{party_id}/collections", response_model=list[CollectionOut])
async def list_collections(
    party_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("parties.read")),
):
    await svc.get_party(db, party_id)
    return await svc.list_collections(db, party_id)


@router.put("/parties/{party_id}/collections", response_model=list[CollectionOut])
async def upsert_collections(
    party_id: str,
    body: CollectionsUpsert,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("parties.write")),
):
    return await svc.upsert_collections(db, party_id, body, user)


# ── Invoices ─────────────────────────────────────────────────

@router.get("/invoices/next-reference", response_model=NextReferenceOut)
async def next_reference(
    kind: str = Query("purchase"),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("local_trade.read")),
):
    return NextReferenceOut(reference_number=await svc.next_reference(db, kind))


@router.get("/invoices", response_model=list[InvoiceOut])
async def list_invoices(
    party_id: str | None = Query(None),
    invoice_kind: str | None = Query(None),
    status_filter: str | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("local_trade.read")),
):
    return await svc.list_invoices(
        db, party_id=party_id, invoice_kind=invoice_kind, status=status_filter,
    )


@router.post("/invoices", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    body: InvoiceCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("local_trade.write")),
):
    return await svc.create_invoice(db, body, user)


@router.get("/invoices/{invoice_id}", response_model=InvoiceOut)
async def get_invoice(
    invoice_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("local_trade.read")),
):
    return await svc.get_invoice(db, invoice_id)


@router.patch("/invoices/{invoice_id}", response_model=InvoiceOut)
async def update_invoice(
    invoice_id: str,
    body: InvoiceUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("local_trade.write")),
):
    return await svc.update_invoice(db, invoice_id, body, user)


@router.post("/invoices/{invoice_id}/receive", response_model=InvoiceReceiveOut)
async def receive_invoice(
    invoice_id: str,
    body: InvoiceReceive,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("local_trade.write")),
):
    return await svc.receive_invoice(db, invoice_id, body, user)


# ── Payments ─────────────────────────────────────────────────

@router.get("/payments", response_model=list[LocalPaymentOut])
async def list_payments(
    party_id: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("local_trade.read")),
):
    return await svc.list_local_payments(db, party_id=party_id)


@router.post("/payments", response_model=LocalPaymentOut, status_code=status.HTTP_201_CREATED)
async def create_payment(
    body: LocalPaymentCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("local_trade.write")),
):
    return await svc.create_local_payment(db, body, user)


# ── Return cases ─────────────────────────────────────────────

@router.get("/return-cases", response_model=list[ReturnCaseOut])
async def list_return_cases(
    party_id: str | None = Query(None),
    invoice_id: str | None = Query(None),
    status_filter: str | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("local_trade.read")),
):
    return await svc.list_return_cases(
        db, party_id=party_id, invoice_id=invoice_id, status=status_filter,
    )


@router.post("/return-cases", response_model=ReturnCaseOut, status_code=status.HTTP_201_CREATED)
async def create_return_case(
    body: ReturnCaseCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("local_trade.write")),
):
    return await svc.create_return_case(db, body, user)


@router.get("/return-cases/{case_id}", response_model=ReturnCaseOut)
async def get_return_case(
    case_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("local_trade.read")),
):
    return await svc.get_return_case(db, case_id)


@router.post("/return-cases/{case_id}/resolve", response_model=ReturnCaseOut)
async def resolve_return_case(
    case_id: str,
    body: ReturnCaseResolve,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("local_trade.write")),
):
    return await svc.resolve_case(db, case_id, body, user)


# ── Collections ──────────────────────────────────────────────

@router.patch("/collections/{collection_id}/status", response_model=CollectionOut)
async def update_collection_status(
    collection_id: str,
    body: CollectionStatusUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("parties.write")),
):
    return await svc.update_collection_status(db, collection_id, body, user)


@router.patch("/collections/{collection_id}/reminder", response_model=CollectionOut)
async def mark_reminder_sent(
    collection_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("parties.write")),
):
    return await svc.mark_reminder_sent(db, collection_id)


@router.delete("/collections/{collection_id}", response_model=MessageResponse)
async def delete_collection(
    collection_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("parties.write")),
):
    await svc.delete_collection(db, collection_id, user)
    return MessageResponse(message="Collection deleted")
