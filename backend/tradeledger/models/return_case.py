"""ReturnCase: a reported return or defect against a party's invoice.

Lifecycle:  pending → resolved   (resolved is terminal)

Only resolved cases affect the party balance.  accepted_return and
deduct_value reduce it by the agreed margin; exchange and damaged leave
it unchanged.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tradeledger.database import Base


class ReturnCase(Base):
    __tablename__ = "return_cases"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    party_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("parties.id"), nullable=False, index=True
    )
    invoice_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("local_invoices.id"), index=True
    )
    season_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("party_seasons.id"), index=True
    )

    # pending | resolved
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    description: Mapped[str | None] = mapped_column(Text)
    pieces: Mapped[int] = mapped_column(Integer, default=0)
    cartons: Mapped[int] = mapped_column(Integer, default=0)

    # ── Resolution ───────────────────────────────────────────
    # accepted_return | deduct_value | exchange | damaged
    resolution: Mapped[str | None] = mapped_column(String(30))
    margin_egp: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    resolution_note: Mapped[str | None] = mapped_column(Text)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime)
    resolved_by: Mapped[str | None] = mapped_column(String(36))

    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
