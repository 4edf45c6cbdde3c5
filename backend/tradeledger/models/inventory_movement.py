"""InventoryMovement: stock in/out at landed unit cost.

Written when a shipment is received (one row per item, pieces received
= COU minus missing pieces), when a local purchase invoice is received,
and when a resolved return case takes stock back or writes it off
(negative pieces).
"""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from tradeledger.database import Base


class InventoryMovement(Base):
    __tablename__ = "inventory_movements"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # shipment_receipt | local_receipt | return_case
    source_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    source_id: Mapped[str | None] = mapped_column(String(36), index=True)

    shipment_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("shipments.id"), index=True
    )
    shipment_item_id: Mapped[str | None] = mapped_column(String(36))
    product_name: Mapped[str | None] = mapped_column(String(255))

    total_pieces_in: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost_rmb: Mapped[Decimal | None] = mapped_column(Numeric(12, 4))
    unit_cost_egp: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    total_cost_egp: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    movement_date: Mapped[date] = mapped_column(Date, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
