"""Party: a local-trade merchant or customer, and its trading seasons.

A party has no stored balance.  Its balance is always recomputed from
the opening balance plus invoices, payments and resolved return cases
(see `services.ledger`).  Trading is grouped into seasons; a settlement
closes the current season (balance must be zero) and opens the next.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tradeledger.database import Base


class Party(Base):
    __tablename__ = "parties"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    # merchant | customer | both
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50))
    whatsapp: Mapped[str | None] = mapped_column(String(50))
    address: Mapped[str | None] = mapped_column(Text)

    # ── Terms ────────────────────────────────────────────────
    # cash | credit
    payment_terms: Mapped[str] = mapped_column(String(20), default="cash")
    # unlimited | limited
    credit_limit_mode: Mapped[str] = mapped_column(String(20), default="unlimited")
    credit_limit_amount_egp: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))

    # ── Opening balance ──────────────────────────────────────
    opening_balance_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    # debit (party owes us) | credit (we owe the party)
    opening_balance_type: Mapped[str] = mapped_column(String(10), default="debit")

    notes: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    seasons = relationship(
        "PartySeason",
        back_populates="party",
        lazy="selectin",
        order_by="PartySeason.season_number",
    )


class PartySeason(Base):
    __tablename__ = "party_seasons"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    party_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("parties.id"), nullable=False, index=True
    )
    season_number: Mapped[int] = mapped_column(Integer, default=1)
    season_name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, default=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime)
    closed_by: Mapped[str | None] = mapped_column(String(36))

    party = relationship("Party", back_populates="seasons")
