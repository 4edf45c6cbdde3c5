"""Pydantic schemas for shipment payment recording."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from tradeledger.services.currency import SUPPORTED_CURRENCIES

COST_COMPONENTS = (
    "goods_cost", "shipping", "commission", "customs", "takhreeg", "customs_takhreeg",
)
COST_COMPONENT_LABELS = {
    "goods_cost": "تكلفة البضاعة",
    "shipping": "الشحن",
    "commission": "العمولة",
    "customs": "الجمرك",
    "takhreeg": "التخريج",
    "customs_takhreeg": "جمرك/تخريج",
}
PAYMENT_METHODS = ("cash", "wallet", "bank_transfer", "instapay", "shortage", "other")
PARTY_TYPES = ("supplier", "shipping_company")


class PaymentCreate(BaseModel):
    shipment_id: str
    party_type: str | None = None
    party_id: str | None = None
    payment_date: datetime
    payment_currency: str
    amount_original: Decimal = Field(gt=0)
    exchange_rate_to_egp: Decimal | None = None
    cost_component: str
    payment_method: str = "cash"
    cash_receiver_name: str | None = None
    reference_number: str | None = None
    note: str | None = None
    auto_allocate: bool = False

    # Pre-uploaded attachment (multipart uploads fill these server-side)
    attachment_url: str | None = None
    attachment_original_name: str | None = None
    attachment_mime_type: str | None = None
    attachment_size: int | None = None

    @field_validator("party_type", "party_id", "exchange_rate_to_egp", mode="before")
    @classmethod
    def blank_is_none(cls, v):
        return None if v == "" else v

    @field_validator("party_type")
    @classmethod
    def valid_party_type(cls, v: str | None) -> str | None:
        if v is not None and v not in PARTY_TYPES:
            raise ValueError("party_type must be 'supplier' or 'shipping_company'")
        return v

    @field_validator("payment_currency")
    @classmethod
    def valid_currency(cls, v: str) -> str:
        if v not in SUPPORTED_CURRENCIES:
            raise ValueError(f"payment_currency must be one of {', '.join(SUPPORTED_CURRENCIES)}")
        return v

    @field_validator("cost_component")
    @classmethod
    def valid_component(cls, v: str) -> str:
        if v not in COST_COMPONENTS:
            raise ValueError(f"cost_component must be one of {', '.join(COST_COMPONENTS)}")
        return v

    @field_validator("payment_method")
    @classmethod
    def valid_method(cls, v: str) -> str:
        if v not in PAYMENT_METHODS:
            raise ValueError(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")
        return v


class AttachmentFinalize(BaseModel):
    attachment_url: str
    attachment_original_name: str | None = None
    attachment_mime_type: str | None = None
    attachment_size: int | None = None


class AllocationOut(BaseModel):
    id: str
    supplier_id: str
    component: str
    currency: str
    allocated_amount: Decimal
    created_at: datetime

    model_config = {"from_attributes": True}


class AllocationSummary(BaseModel):
    exists: bool
    count: int
    total_allocated: Decimal


class PaymentOut(BaseModel):
    id: str
    payment_ref: str
    shipment_id: str
    party_type: str
    party_id: str | None
    payment_date: datetime
    payment_currency: str
    amount_original: Decimal
    exchange_rate_to_egp: Decimal | None
    amount_egp: Decimal
    cost_component: str
    payment_method: str
    cash_receiver_name: str | None
    reference_number: str | None
    note: str | None
    attachment_url: str | None
    attachment_original_name: str | None
    attachment_mime_type: str | None
    attachment_size: int | None
    attachment_uploaded_at: datetime | None
    created_by: str | None
    created_at: datetime
    allocations: list[AllocationOut] = []
    allocation_summary: AllocationSummary | None = None

    model_config = {"from_attributes": True}


class PaymentStats(BaseModel):
    total_cost_egp: Decimal
    total_paid_egp: Decimal
    total_balance_egp: Decimal
    payment_count: int
    last_payment: PaymentOut | None = None


class PaymentDeleteOut(BaseModel):
    deleted: bool
    allocations_deleted: int
