"""Schemas for local trade: parties, invoices, payments, return cases,
collections and notifications."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator

PARTY_TYPES = ("merchant", "customer", "both")
PAYMENT_TERMS = ("cash", "credit")
CREDIT_LIMIT_MODES = ("unlimited", "limited")
BALANCE_TYPES = ("debit", "credit")
INVOICE_KINDS = ("purchase", "sale", "return")
UNIT_MODES = ("piece", "dozen")
LOCAL_PAYMENT_METHODS = ("cash", "wallet", "bank_transfer", "instapay", "other")
COLLECTION_STATUSES = ("pending", "collected", "postponed")

INVOICE_KIND_LABELS = {
    "purchase": "فاتورة شراء",
    "sale": "فاتورة بيع",
    "return": "فاتورة مرتجع",
    "settlement": "تسوية",
}


def _one_of(value: str, allowed: tuple, name: str) -> str:
    if value not in allowed:
        raise ValueError(f"{name} must be one of {', '.join(allowed)}")
    return value


# ── Parties ──────────────────────────────────────────────────

class PartyCreate(BaseModel):
    name: str
    type: str
    phone: str | None = None
    whatsapp: str | None = None
    address: str | None = None
    payment_terms: str = "cash"
    credit_limit_mode: str = "unlimited"
    credit_limit_amount_egp: Decimal | None = Field(default=None, ge=0)
    opening_balance_egp: Decimal = Field(default=Decimal("0"), ge=0)
    opening_balance_type: str = "debit"
    notes: str | None = None

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v.strip()

    @field_validator("type")
    @classmethod
    def valid_type(cls, v: str) -> str:
        return _one_of(v, PARTY_TYPES, "type")

    @field_validator("payment_terms")
    @classmethod
    def valid_terms(cls, v: str) -> str:
        return _one_of(v, PAYMENT_TERMS, "payment_terms")

    @field_validator("credit_limit_mode")
    @classmethod
    def valid_limit_mode(cls, v: str) -> str:
        return _one_of(v, CREDIT_LIMIT_MODES, "credit_limit_mode")

    @field_validator("opening_balance_type")
    @classmethod
    def valid_balance_type(cls, v: str) -> str:
        return _one_of(v, BALANCE_TYPES, "opening_balance_type")

    @model_validator(mode="after")
    def limited_needs_amount(self):
        if self.credit_limit_mode == "limited" and self.credit_limit_amount_egp is None:
            raise ValueError("credit_limit_amount_egp is required when credit is limited")
        return self


class PartyUpdate(BaseModel):
    name: str | None = None
    phone: str | None = None
    whatsapp: str | None = None
    address: str | None = None
    payment_terms: str | None = None
    credit_limit_mode: str | None = None
    credit_limit_amount_egp: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None
    is_active: bool | None = None

    @field_validator("payment_terms")
    @classmethod
    def valid_terms(cls, v: str | None) -> str | None:
        return v if v is None else _one_of(v, PAYMENT_TERMS, "payment_terms")

    @field_validator("credit_limit_mode")
    @classmethod
    def valid_limit_mode(cls, v: str | None) -> str | None:
        return v if v is None else _one_of(v, CREDIT_LIMIT_MODES, "credit_limit_mode")


class SeasonOut(BaseModel):
    id: str
    party_id: str
    season_number: int
    season_name: str
    is_current: bool
    started_at: datetime
    ended_at: datetime | None

    model_config = {"from_attributes": True}


class BalanceOut(BaseModel):
    balance_egp: Decimal
    direction: str  # debit | credit | zero


class PartyOut(BaseModel):
    id: str
    name: str
    type: str
    phone: str | None
    whatsapp: str | None
    address: str | None
    payment_terms: str
    credit_limit_mode: str
    credit_limit_amount_egp: Decimal | None
    opening_balance_egp: Decimal
    opening_balance_type: str
    notes: str | None
    is_active: bool
    created_at: datetime

    # Filled by the service from the ledger
    balance_egp: Decimal = Decimal("0")
    balance_direction: str = "zero"
    current_season: SeasonOut | None = None

    model_config = {"from_attributes": True}


class PartyProfileOut(BaseModel):
    party: PartyOut
    current_season: SeasonOut | None
    balance: BalanceOut
    total_invoices: int
    total_payments: int
    open_return_cases: int


class LedgerEntryOut(BaseModel):
    event_date: date
    kind: str
    amount: Decimal
    running_balance: Decimal
    source_id: str | None
    reference: str | None

    model_config = {"from_attributes": True}


class PartyLedgerOut(BaseModel):
    party_id: str
    season_id: str | None
    balance_egp: Decimal
    direction: str
    entries: list[LedgerEntryOut]


class PartySummaryOut(BaseModel):
    party_id: str
    season_id: str | None
    total_invoices_egp: Decimal
    invoices_count: int
    total_paid_egp: Decimal
    payments_count: int
    remaining_balance_egp: Decimal
    credit_balance_egp: Decimal
    under_inspection_count: int
    last_invoice_date: date | None
    last_payment_date: date | None
    last_collection_date: date | None
    upcoming_collections: int


class TimelineEntryOut(BaseModel):
    type: str  # invoice | payment | return | collection
    date: date
    id: str
    title: str
    description: str | None
    amount: Decimal | None
    status: str | None
    reference_number: str | None


# ── Invoices ─────────────────────────────────────────────────

class InvoiceLineIn(BaseModel):
    product_name: str
    product_type: str | None = None
    cartons: int = Field(default=0, ge=0)
    pieces_per_carton: int = Field(default=0, ge=0)
    # Defaults to cartons × pieces_per_carton
    total_pieces: int | None = Field(default=None, ge=0)
    unit_mode: str = "piece"
    unit_price_egp: Decimal = Field(ge=0)

    @field_validator("unit_mode")
    @classmethod
    def valid_unit_mode(cls, v: str) -> str:
        return _one_of(v, UNIT_MODES, "unit_mode")


class InvoiceCreate(BaseModel):
    party_id: str
    invoice_kind: str
    invoice_date: date
    reference_number: str | None = None
    discount_egp: Decimal = Field(default=Decimal("0"), ge=0)
    notes: str | None = None
    lines: list[InvoiceLineIn] = []

    @field_validator("invoice_kind")
    @classmethod
    def valid_kind(cls, v: str) -> str:
        return _one_of(v, INVOICE_KINDS, "invoice_kind")


class InvoiceUpdate(BaseModel):
    invoice_date: date | None = None
    notes: str | None = None


class InvoiceReceive(BaseModel):
    received_at: datetime | None = None
    notes: str | None = None


class InvoiceLineOut(BaseModel):
    id: str
    line_no: int
    product_name: str
    product_type: str | None
    cartons: int
    pieces_per_carton: int
    total_pieces: int
    unit_mode: str
    unit_price_egp: Decimal
    line_total_egp: Decimal

    model_config = {"from_attributes": True}


class InvoiceOut(BaseModel):
    id: str
    reference_number: str
    invoice_kind: str
    party_id: str
    season_id: str | None
    invoice_date: date
    status: str
    total_cartons: int
    total_pieces: int
    subtotal_egp: Decimal
    discount_egp: Decimal
    total_egp: Decimal
    notes: str | None
    created_at: datetime
    lines: list[InvoiceLineOut] = []

    model_config = {"from_attributes": True}


class ReceiptOut(BaseModel):
    id: str
    invoice_id: str
    receiving_status: str
    received_at: datetime
    notes: str | None

    model_config = {"from_attributes": True}


class InvoiceReceiveOut(BaseModel):
    invoice: InvoiceOut
    receipt: ReceiptOut
    movements_created: int


class NextReferenceOut(BaseModel):
    reference_number: str


# ── Payments ─────────────────────────────────────────────────

class LocalPaymentCreate(BaseModel):
    party_id: str
    payment_date: date
    amount_egp: Decimal = Field(gt=0)
    payment_method: str = "cash"
    reference_number: str | None = None
    notes: str | None = None

    @field_validator("payment_method")
    @classmethod
    def valid_method(cls, v: str) -> str:
        return _one_of(v, LOCAL_PAYMENT_METHODS, "payment_method")


class LocalPaymentOut(BaseModel):
    id: str
    party_id: str
    season_id: str | None
    payment_date: date
    amount_egp: Decimal
    payment_method: str
    reference_number: str | None
    notes: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Return cases ─────────────────────────────────────────────

class ReturnCaseCreate(BaseModel):
    party_id: str
    invoice_id: str | None = None
    description: str | None = None
    pieces: int = Field(default=0, ge=0)
    cartons: int = Field(default=0, ge=0)


class ReturnCaseResolve(BaseModel):
    resolution: str | None = None
    margin_egp: Decimal
    pieces: int | None = Field(default=None, ge=0)
    cartons: int | None = Field(default=None, ge=0)
    resolution_note: str | None = None


class ReturnCaseOut(BaseModel):
    id: str
    party_id: str
    invoice_id: str | None
    season_id: str | None
    status: str
    description: str | None
    pieces: int
    cartons: int
    resolution: str | None
    margin_egp: Decimal | None
    resolution_note: str | None
    resolved_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Collections ──────────────────────────────────────────────

class CollectionIn(BaseModel):
    collection_order: int = Field(ge=1, le=4)
    collection_date: date
    amount_egp: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None


class CollectionsUpsert(BaseModel):
    collections: list[CollectionIn]

    @field_validator("collections")
    @classmethod
    def unique_orders(cls, v: list[CollectionIn]) -> list[CollectionIn]:
        orders = [c.collection_order for c in v]
        if len(orders) != len(set(orders)):
            raise ValueError("Each collection order may appear once")
        return v


class CollectionStatusUpdate(BaseModel):
    status: str
    linked_payment_id: str | None = None

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        return _one_of(v, COLLECTION_STATUSES, "status")


class CollectionOut(BaseModel):
    id: str
    party_id: str
    collection_order: int
    collection_date: date
    amount_egp: Decimal | None
    notes: str | None
    status: str
    collected_at: datetime | None
    linked_payment_id: str | None
    reminder_sent: bool
    reminder_sent_at: datetime | None

    model_config = {"from_attributes": True}


# ── Notifications ────────────────────────────────────────────

class NotificationOut(BaseModel):
    id: str
    user_id: str | None
    type: str
    title: str
    message: str | None
    reference_type: str | None
    reference_id: str | None
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ReminderCheckOut(BaseModel):
    created: int
