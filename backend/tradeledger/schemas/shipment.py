"""Schemas for the shipment wizard.

Each wizard step is its own command, tagged by `step`:

    goods     header fields + items (missing pieces are preserved)
    shipping  commission, area, cost per m², snapshotted rates
    customs   per-item customs per piece / takhreeg per carton
    discount  partial discount in RMB
    receipt   mark received and book inventory

Missing pieces have their own endpoint so that saving a step never
overwrites them and vice versa.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator


# ── Items ────────────────────────────────────────────────────

class ShipmentItemIn(BaseModel):
    id: str | None = None  # set to keep an existing item on a goods update
    supplier_id: str | None = None
    product_name: str
    product_type: str | None = None
    country_of_origin: str = "China"
    image_url: str | None = None
    cartons_ctn: int = Field(ge=0)
    pieces_per_carton_pcs: int = Field(ge=0)
    purchase_price_per_piece_rmb: Decimal = Field(ge=0)

    @field_validator("product_name")
    @classmethod
    def name_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Product name is required")
        return v.strip()


class ShipmentItemOut(BaseModel):
    id: str
    line_no: int
    supplier_id: str | None
    product_name: str
    product_type: str | None
    country_of_origin: str
    image_url: str | None
    cartons_ctn: int
    pieces_per_carton_pcs: int
    total_pieces_cou: int
    purchase_price_per_piece_rmb: Decimal
    total_purchase_cost_rmb: Decimal
    customs_cost_per_piece_egp: Decimal | None
    total_customs_cost_egp: Decimal
    takhreeg_cost_per_carton_egp: Decimal | None
    total_takhreeg_cost_egp: Decimal
    missing_pieces: int
    missing_cost_egp: Decimal

    model_config = {"from_attributes": True}


class ShippingDetailsOut(BaseModel):
    commission_rate_percent: Decimal
    shipping_area_sqm: Decimal
    shipping_cost_per_sqm_usd: Decimal
    shipping_date: date | None
    rmb_to_egp_rate: Decimal
    usd_to_rmb_rate: Decimal
    rates_updated_at: datetime

    model_config = {"from_attributes": True}


# ── Create ───────────────────────────────────────────────────

class ShipmentCreate(BaseModel):
    shipment_name: str
    purchase_date: date
    purchase_rmb_to_egp_rate: Decimal | None = None
    shipping_company_id: str | None = None
    items: list[ShipmentItemIn] = []


# ── Step commands ────────────────────────────────────────────

class GoodsStep(BaseModel):
    step: Literal["goods"]
    shipment_name: str | None = None
    purchase_date: date | None = None
    purchase_rmb_to_egp_rate: Decimal | None = None
    shipping_company_id: str | None = None
    items: list[ShipmentItemIn]


class ShippingStep(BaseModel):
    step: Literal["shipping"]
    commission_rate_percent: Decimal = Field(default=Decimal("0"), ge=0)
    shipping_area_sqm: Decimal = Field(default=Decimal("0"), ge=0)
    shipping_cost_per_sqm_usd: Decimal = Field(default=Decimal("0"), ge=0)
    shipping_date: date | None = None
    rmb_to_egp_rate: Decimal | None = None
    usd_to_rmb_rate: Decimal | None = None


class ItemCustomsIn(BaseModel):
    item_id: str
    customs_cost_per_piece_egp: Decimal | None = Field(default=None, ge=0)
    takhreeg_cost_per_carton_egp: Decimal | None = Field(default=None, ge=0)


class CustomsStep(BaseModel):
    step: Literal["customs"]
    customs_invoice_date: date | None = None
    items: list[ItemCustomsIn] = []


class DiscountStep(BaseModel):
    step: Literal["discount"]
    partial_discount_rmb: Decimal = Field(default=Decimal("0"), ge=0)
    discount_notes: str | None = None


class ReceiptStep(BaseModel):
    step: Literal["receipt"]
    received_at: datetime | None = None


ShipmentStep = Annotated[
    Union[GoodsStep, ShippingStep, CustomsStep, DiscountStep, ReceiptStep],
    Field(discriminator="step"),
]

STEP_NUMBERS = {"goods": 1, "shipping": 2, "customs": 3, "discount": 4, "receipt": 5}


class MissingPieceIn(BaseModel):
    item_id: str
    missing_pieces: int


class MissingPiecesUpdate(BaseModel):
    updates: list[MissingPieceIn]


# ── Output ───────────────────────────────────────────────────

class ShipmentSummary(BaseModel):
    id: str
    shipment_code: str
    shipment_name: str
    status: str
    last_step: int
    purchase_date: date
    shipping_company_id: str | None
    shipping_company_name: str | None = None
    final_total_cost_egp: Decimal
    total_paid_egp: Decimal
    balance_egp: Decimal
    created_at: datetime

    model_config = {"from_attributes": True}


class ShipmentOut(BaseModel):
    id: str
    shipment_code: str
    shipment_name: str
    status: str
    last_step: int
    purchase_date: date
    purchase_rmb_to_egp_rate: Decimal
    shipping_company_id: str | None
    shipping_company_name: str | None = None
    customs_invoice_date: date | None
    partial_discount_rmb: Decimal
    discount_notes: str | None

    purchase_cost_rmb: Decimal
    purchase_cost_egp: Decimal
    discount_egp: Decimal
    commission_cost_rmb: Decimal
    commission_cost_egp: Decimal
    shipping_cost_rmb: Decimal
    shipping_cost_egp: Decimal
    customs_cost_egp: Decimal
    takhreeg_cost_egp: Decimal
    missing_cost_egp: Decimal
    final_total_cost_egp: Decimal

    total_paid_egp: Decimal
    balance_egp: Decimal
    last_payment_date: datetime | None
    received_at: datetime | None
    archived_at: datetime | None
    created_at: datetime

    items: list[ShipmentItemOut] = []
    shipping: ShippingDetailsOut | None = None

    model_config = {"from_attributes": True}


class PartyRef(BaseModel):
    id: str
    name: str


class RelatedPartiesOut(BaseModel):
    suppliers: list[PartyRef]
    shipping_company: PartyRef | None = None


class GoodsSummaryOut(BaseModel):
    supplier_id: str
    supplier_goods_total_rmb: Decimal
    supplier_paid_rmb: Decimal
    supplier_remaining_rmb: Decimal
    supplier_overpaid_rmb: Decimal


class InvoiceLineOut(BaseModel):
    item_id: str | None
    product_name: str | None = None
    supplier_id: str | None
    total_pieces_cou: int
    piece_ratio: Decimal
    purchase_cost_rmb: Decimal
    purchase_cost_egp: Decimal
    share_of_extras_egp: Decimal
    total_cost_egp: Decimal
    unit_cost_egp: Decimal
    unit_cost_rmb: Decimal
    missing_pieces: int
    missing_cost_egp: Decimal


class InvoiceSummaryOut(BaseModel):
    shipment_id: str
    shipment_code: str
    purchase_rate: Decimal
    total_pieces: int
    purchase_cost_rmb: Decimal
    purchase_cost_egp: Decimal
    discount_egp: Decimal
    commission_cost_egp: Decimal
    shipping_cost_egp: Decimal
    customs_cost_egp: Decimal
    takhreeg_cost_egp: Decimal
    shared_extras_egp: Decimal
    missing_cost_egp: Decimal
    final_total_cost_egp: Decimal
    lines: list[InvoiceLineOut]


class InventoryMovementOut(BaseModel):
    id: str
    source_type: str
    source_id: str | None
    shipment_id: str | None
    shipment_item_id: str | None
    product_name: str | None
    total_pieces_in: int
    unit_cost_rmb: Decimal | None
    unit_cost_egp: Decimal
    total_cost_egp: Decimal
    movement_date: date
    created_at: datetime

    model_config = {"from_attributes": True}
