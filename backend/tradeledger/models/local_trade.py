"""Local-trade documents: invoices and their lines, receipts, payments.

Invoice kinds and their effect on the party balance:
    purchase    +total     (goods bought on the party's account)
    sale        +total
    return      -total
    settlement   0         (season close marker)
"""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tradeledger.database import Base


class LocalInvoice(Base):
    __tablename__ = "local_invoices"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # PI- / SI- / RET- / SET-YYYYMMDD-NNNN
    reference_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )
    # purchase | sale | return | settlement
    invoice_kind: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    party_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("parties.id"), nullable=False, index=True
    )
    season_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("party_seasons.id"), index=True
    )
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)

    # pending | received | posted (settlement)
    status: Mapped[str] = mapped_column(String(20), default="pending")

    total_cartons: Mapped[int] = mapped_column(Integer, default=0)
    total_pieces: Mapped[int] = mapped_column(Integer, default=0)
    subtotal_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    discount_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    total_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))

    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    lines = relationship(
        "LocalInvoiceLine",
        back_populates="invoice",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="LocalInvoiceLine.line_no",
    )
    party = relationship("Party", lazy="selectin")


class LocalInvoiceLine(Base):
    __tablename__ = "local_invoice_lines"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    invoice_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("local_invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_no: Mapped[int] = mapped_column(Integer, default=1)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_type: Mapped[str | None] = mapped_column(String(100))

    cartons: Mapped[int] = mapped_column(Integer, default=0)
    pieces_per_carton: Mapped[int] = mapped_column(Integer, default=0)
    total_pieces: Mapped[int] = mapped_column(Integer, nullable=False)

    # piece | dozen
    unit_mode: Mapped[str] = mapped_column(String(10), default="piece")
    # Price per unit_mode (per piece, or per dozen)
    unit_price_egp: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    line_total_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    invoice = relationship("LocalInvoice", back_populates="lines")


class LocalReceipt(Base):
    __tablename__ = "local_receipts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    invoice_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("local_invoices.id"), nullable=False, index=True
    )
    receiving_status: Mapped[str] = mapped_column(String(20), default="received")
    received_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    received_by: Mapped[str | None] = mapped_column(String(36))
    notes: Mapped[str | None] = mapped_column(Text)


class LocalPayment(Base):
    __tablename__ = "local_payments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    party_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("parties.id"), nullable=False, index=True
    )
    season_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("party_seasons.id"), index=True
    )
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(30), default="cash")
    reference_number: Mapped[str | None] = mapped_column(String(100))
    notes: Mapped[str | None] = mapped_column(Text)

    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
