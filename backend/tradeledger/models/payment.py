"""ShipmentPayment and PaymentAllocation.

A payment targets one party (a supplier or a shipping company) and one
cost component of one shipment.  Payments are immutable once recorded,
apart from finalising the attachment metadata.

PaymentAllocation rows split a shipping-company RMB goods payment
across the shipment's suppliers.  They are only written by the
auto-allocation flow, in the same transaction as their payment, and
are append-only.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tradeledger.database import Base


class ShipmentPayment(Base):
    __tablename__ = "shipment_payments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    payment_ref: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )

    # ── Links ────────────────────────────────────────────────
    shipment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shipments.id"), nullable=False, index=True
    )
    # supplier | shipping_company
    party_type: Mapped[str] = mapped_column(String(30), default="supplier")
    party_id: Mapped[str | None] = mapped_column(String(36), index=True)

    # ── Amounts ──────────────────────────────────────────────
    payment_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    # RMB | EGP | USD
    payment_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    amount_original: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    exchange_rate_to_egp: Mapped[Decimal | None] = mapped_column(Numeric(12, 4))
    amount_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    # goods_cost | shipping | commission | customs | takhreeg | customs_takhreeg
    cost_component: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    # cash | wallet | bank_transfer | instapay | shortage | other
    payment_method: Mapped[str] = mapped_column(String(30), default="cash")
    cash_receiver_name: Mapped[str | None] = mapped_column(String(255))
    reference_number: Mapped[str | None] = mapped_column(String(100))
    note: Mapped[str | None] = mapped_column(Text)

    # ── Attachment ───────────────────────────────────────────
    attachment_url: Mapped[str | None] = mapped_column(String(500))
    attachment_original_name: Mapped[str | None] = mapped_column(String(255))
    attachment_mime_type: Mapped[str | None] = mapped_column(String(100))
    attachment_size: Mapped[int | None] = mapped_column(Integer)
    attachment_uploaded_at: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Metadata ─────────────────────────────────────────────
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    shipment = relationship("Shipment", lazy="selectin")
    allocations = relationship(
        "PaymentAllocation",
        back_populates="payment",
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class PaymentAllocation(Base):
    __tablename__ = "payment_allocations"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    payment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shipment_payments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    shipment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shipments.id"), nullable=False, index=True
    )
    supplier_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("suppliers.id"), nullable=False, index=True
    )
    component: Mapped[str] = mapped_column(String(30), default="goods_cost")
    currency: Mapped[str] = mapped_column(String(3), default="RMB")
    allocated_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    payment = relationship("ShipmentPayment", back_populates="allocations")
