"""PartyCollection: up to four scheduled collection dates per party.

Status:  pending → collected | postponed
"""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from tradeledger.database import Base


class PartyCollection(Base):
    __tablename__ = "party_collections"
    __table_args__ = (
        UniqueConstraint("party_id", "collection_order", name="uq_party_collection_order"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    party_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("parties.id"), nullable=False, index=True
    )
    collection_order: Mapped[int] = mapped_column(Integer, nullable=False)  # 1..4
    collection_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    amount_egp: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    notes: Mapped[str | None] = mapped_column(Text)

    # pending | collected | postponed
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    collected_at: Mapped[datetime | None] = mapped_column(DateTime)
    linked_payment_id: Mapped[str | None] = mapped_column(String(36))

    reminder_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    reminder_sent_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
