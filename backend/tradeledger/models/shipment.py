"""Shipment: one import consignment from China, costed across wizard steps.

A shipment is created at step 1 (goods) with its items and walks the
wizard: shipping details, customs/takhreeg, discount, receipt.  All cost
totals stored here are derived from the items and shipping details by
`services.costing`; they are rewritten after every command and are never
edited directly.

Lifecycle:  new → awaiting_shipping → ready_for_receipt → received → archived
Archived shipments are locked and never hard-deleted.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Date, DateTime, ForeignKey, Integer, Numeric, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tradeledger.database import Base

ZERO = Decimal("0")


class Shipment(Base):
    __tablename__ = "shipments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    shipment_code: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )
    shipment_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # new | awaiting_shipping | ready_for_receipt | received | archived
    status: Mapped[str] = mapped_column(String(30), default="new", index=True)
    last_step: Mapped[int] = mapped_column(Integer, default=1)

    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    purchase_rmb_to_egp_rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)

    shipping_company_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("shipping_companies.id"), index=True
    )

    # ── Step 3 / 4 header fields ─────────────────────────────
    customs_invoice_date: Mapped[date | None] = mapped_column(Date)
    partial_discount_rmb: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)
    discount_notes: Mapped[str | None] = mapped_column(Text)

    # ── Derived totals ───────────────────────────────────────
    purchase_cost_rmb: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)
    purchase_cost_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)
    discount_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)
    commission_cost_rmb: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)
    commission_cost_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)
    shipping_cost_rmb: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)
    shipping_cost_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)
    customs_cost_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)
    takhreeg_cost_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)
    missing_cost_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)
    final_total_cost_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)

    # ── Payments ─────────────────────────────────────────────
    total_paid_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)
    balance_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)
    last_payment_date: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Metadata ─────────────────────────────────────────────
    received_at: Mapped[datetime | None] = mapped_column(DateTime)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    items = relationship(
        "ShipmentItem",
        back_populates="shipment",
        lazy="selectin",
        order_by="ShipmentItem.line_no",
        cascade="all, delete-orphan",
    )
    shipping = relationship(
        "ShipmentShippingDetails",
        back_populates="shipment",
        lazy="selectin",
        uselist=False,
        cascade="all, delete-orphan",
    )
    shipping_company = relationship("ShippingCompany", lazy="selectin")


class ShipmentItem(Base):
    __tablename__ = "shipment_items"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    shipment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_no: Mapped[int] = mapped_column(Integer, default=1)

    supplier_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("suppliers.id"), index=True
    )
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_type: Mapped[str | None] = mapped_column(String(100))
    country_of_origin: Mapped[str] = mapped_column(String(100), default="China")
    image_url: Mapped[str | None] = mapped_column(String(500))

    # ── Quantities (COU = CTN × PCS) ─────────────────────────
    cartons_ctn: Mapped[int] = mapped_column(Integer, nullable=False)
    pieces_per_carton_pcs: Mapped[int] = mapped_column(Integer, nullable=False)
    total_pieces_cou: Mapped[int] = mapped_column(Integer, nullable=False)

    # ── Purchase ─────────────────────────────────────────────
    purchase_price_per_piece_rmb: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    total_purchase_cost_rmb: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    # ── Customs / takhreeg (step 3) ──────────────────────────
    customs_cost_per_piece_egp: Mapped[Decimal | None] = mapped_column(Numeric(12, 4))
    total_customs_cost_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)
    takhreeg_cost_per_carton_egp: Mapped[Decimal | None] = mapped_column(Numeric(12, 4))
    total_takhreeg_cost_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)

    # ── Missing / damaged pieces ─────────────────────────────
    missing_pieces: Mapped[int] = mapped_column(Integer, default=0)
    missing_cost_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=ZERO)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    shipment = relationship("Shipment", back_populates="items")
    supplier = relationship("Supplier", lazy="selectin")


class ShipmentShippingDetails(Base):
    """Shipping inputs for a shipment. Rates are snapshotted when saved."""

    __tablename__ = "shipment_shipping_details"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    shipment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shipments.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    commission_rate_percent: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=ZERO)
    shipping_area_sqm: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO)
    shipping_cost_per_sqm_usd: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=ZERO)
    shipping_date: Mapped[date | None] = mapped_column(Date)

    # ── Snapshotted rates ────────────────────────────────────
    rmb_to_egp_rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    usd_to_rmb_rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    rates_updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    shipment = relationship("Shipment", back_populates="shipping")
