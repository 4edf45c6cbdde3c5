"""Party running balance for local trade.

Sign convention: a positive balance means the party owes the business
(debit, "عليه"); a negative balance means the business owes the party
(credit, "له").

    opening balance    +amount if debit, −amount if credit
    purchase / sale    +invoice total
    return invoice     −invoice total
    settlement          0
    payment            −payment amount
    resolved return    −margin (accepted_return, deduct_value)
                        0      (exchange, damaged)

Pending return cases have no effect.  The balance is recomputed from the
full event history on every read and never stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable

from tradeledger.services.currency import ZERO, round2, to_decimal

INVOICE_SIGNS = {
    "purchase": 1,
    "sale": 1,
    "return": -1,
    "settlement": 0,
}

# Return resolutions that reduce what the party owes by the margin
BALANCE_REDUCING_RESOLUTIONS = {"accepted_return", "deduct_value"}


@dataclass
class LedgerEvent:
    event_date: date
    kind: str  # opening | invoice | payment | return_case
    amount: Decimal  # signed effect on the balance
    source_id: str | None = None
    reference: str | None = None
    created_at: datetime | None = None
    running_balance: Decimal = ZERO

    def sort_key(self):
        return (
            self.event_date,
            self.kind != "opening",
            self.created_at or datetime.min,
            self.source_id or "",
        )


@dataclass
class LedgerResult:
    events: list[LedgerEvent] = field(default_factory=list)
    balance: Decimal = ZERO

    @property
    def direction(self) -> str:
        return balance_direction(self.balance)

    @property
    def balance_egp(self) -> Decimal:
        return round2(abs(self.balance))


def balance_direction(balance: Decimal) -> str:
    if balance > 0:
        return "debit"
    if balance < 0:
        return "credit"
    return "zero"


def opening_balance_amount(amount, balance_type: str) -> Decimal:
    amount = to_decimal(amount)
    return -amount if balance_type == "credit" else amount


def invoice_effect(invoice_kind: str, total_egp) -> Decimal:
    return to_decimal(total_egp) * INVOICE_SIGNS.get(invoice_kind, 0)


def return_case_effect(status: str, resolution: str | None, margin_egp) -> Decimal:
    if status != "resolved" or resolution not in BALANCE_REDUCING_RESOLUTIONS:
        return ZERO
    return -to_decimal(margin_egp)


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def build_events(
    invoices: Iterable = (),
    payments: Iterable = (),
    return_cases: Iterable = (),
    opening_balance=None,
    opening_balance_type: str = "debit",
    opening_date: date | None = None,
) -> list[LedgerEvent]:
    """Turn stored rows into ledger events (unsorted)."""
    events: list[LedgerEvent] = []

    if opening_balance is not None and to_decimal(opening_balance) != 0:
        events.append(LedgerEvent(
            event_date=opening_date or date.min,
            kind="opening",
            amount=opening_balance_amount(opening_balance, opening_balance_type),
        ))

    for inv in invoices:
        events.append(LedgerEvent(
            event_date=_as_date(inv.invoice_date),
            kind="invoice",
            amount=invoice_effect(inv.invoice_kind, inv.total_egp),
            source_id=inv.id,
            reference=inv.reference_number,
            created_at=inv.created_at,
        ))

    for pay in payments:
        events.append(LedgerEvent(
            event_date=_as_date(pay.payment_date),
            kind="payment",
            amount=-to_decimal(pay.amount_egp),
            source_id=pay.id,
            reference=pay.reference_number,
            created_at=pay.created_at,
        ))

    for case in return_cases:
        if case.status != "resolved":
            continue
        events.append(LedgerEvent(
            event_date=_as_date(case.resolved_at),
            kind="return_case",
            amount=return_case_effect(case.status, case.resolution, case.margin_egp),
            source_id=case.id,
            created_at=case.resolved_at,
        ))

    return events


def compute_balance(events: Iterable[LedgerEvent], as_of: date | None = None) -> LedgerResult:
    """Order events chronologically and attach running balances.

    With `as_of`, events dated after that day are left out, so the
    result is the balance the party carried at the end of that day.
    """
    ordered = sorted(events, key=LedgerEvent.sort_key)
    if as_of is not None:
        ordered = [e for e in ordered if e.event_date <= as_of]
    balance = ZERO
    for event in ordered:
        balance += event.amount
        event.running_balance = balance
    return LedgerResult(events=ordered, balance=balance)
