"""Sequential document codes.

Format tokens:
  {date}       → YYYYMMDD
  {seq:N}      → zero-padded sequence number, N digits, resets daily per prefix

Formats:
  shipment:            SHP-{date}-{seq:3}
  payment:             PAY-{date}-{seq:3}
  purchase invoice:    PI-{date}-{seq:4}
  sale invoice:        SI-{date}-{seq:4}
  return invoice:      RET-{date}-{seq:4}
  settlement invoice:  SET-{date}-{seq:4}
"""

import re
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.models.local_trade import LocalInvoice
from tradeledger.models.payment import ShipmentPayment
from tradeledger.models.shipment import Shipment

FORMATS = {
    "shipment": "SHP-{date}-{seq:3}",
    "payment": "PAY-{date}-{seq:3}",
    "purchase": "PI-{date}-{seq:4}",
    "sale": "SI-{date}-{seq:4}",
    "return": "RET-{date}-{seq:4}",
    "settlement": "SET-{date}-{seq:4}",
}

# Entity → code column to count existing codes against
ENTITY_COLUMN_MAP = {
    "shipment": Shipment.shipment_code,
    "payment": ShipmentPayment.payment_ref,
    "purchase": LocalInvoice.reference_number,
    "sale": LocalInvoice.reference_number,
    "return": LocalInvoice.reference_number,
    "settlement": LocalInvoice.reference_number,
}


def _build_prefix(fmt: str, date_str: str) -> str:
    """Everything before {seq:N}, used to count today's codes."""
    prefix = fmt.replace("{date}", date_str)
    return re.sub(r"\{seq:\d+\}.*$", "", prefix)


async def generate_code(db: AsyncSession, entity: str, on: date | None = None) -> str:
    """Generate the next code for `entity`, e.g. "SHP-20260219-001"."""
    fmt = FORMATS[entity]
    date_str = (on or date.today()).strftime("%Y%m%d")
    prefix = _build_prefix(fmt, date_str)

    column = ENTITY_COLUMN_MAP[entity]
    count = await db.scalar(
        select(func.count()).where(column.like(f"{prefix}%"))
    ) or 0

    seq_match = re.search(r"\{seq:(\d+)\}", fmt)
    seq_width = int(seq_match.group(1)) if seq_match else 3

    code = fmt.replace("{date}", date_str)
    return re.sub(r"\{seq:\d+\}", f"{count + 1:0{seq_width}d}", code)
