"""Party ledger and return case resolution tests.

Balance sign convention pinned here: positive = the party owes us
(debit), negative = we owe the party (credit).
"""

from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from tradeledger.middleware.exceptions import ConflictError, ValidationError
from tradeledger.services.ledger import (
    balance_direction,
    build_events,
    compute_balance,
    invoice_effect,
    return_case_effect,
)
from tradeledger.services.returns import resolve_return_case


def _invoice(kind, total, on, ident):
    return SimpleNamespace(
        id=ident,
        invoice_kind=kind,
        total_egp=Decimal(total),
        invoice_date=on,
        reference_number=f"REF-{ident}",
        created_at=datetime.combine(on, datetime.min.time()),
    )


def _payment(amount, on, ident):
    return SimpleNamespace(
        id=ident,
        amount_egp=Decimal(amount),
        payment_date=on,
        reference_number=None,
        created_at=datetime.combine(on, datetime.min.time()),
    )


def _case(status, resolution, margin, resolved_at=None, ident="c"):
    return SimpleNamespace(
        id=ident, status=status, resolution=resolution,
        margin_egp=Decimal(margin), resolved_at=resolved_at,
    )


def _history():
    return build_events(
        invoices=[
            _invoice("sale", "500", date(2025, 1, 5), "i1"),
            _invoice("return", "100", date(2025, 1, 12), "i2"),
            _invoice("settlement", "0", date(2025, 1, 20), "i3"),
        ],
        payments=[_payment("300", date(2025, 1, 10), "p1")],
        return_cases=[
            _case("resolved", "deduct_value", "50", datetime(2025, 1, 15, 9), "c1"),
            _case("resolved", "exchange", "20", datetime(2025, 1, 16, 9), "c2"),
            _case("pending", None, "0", None, "c3"),
        ],
        opening_balance=Decimal("1000"),
        opening_balance_type="debit",
        opening_date=date(2025, 1, 1),
    )


@pytest.mark.unit
class TestEffects:

    def test_invoice_signs(self):
        assert invoice_effect("purchase", "100") == Decimal("100")
        assert invoice_effect("sale", "100") == Decimal("100")
        assert invoice_effect("return", "100") == Decimal("-100")
        assert invoice_effect("settlement", "100") == 0

    def test_return_case_effects(self):
        assert return_case_effect("resolved", "accepted_return", "40") == Decimal("-40")
        assert return_case_effect("resolved", "deduct_value", "40") == Decimal("-40")
        assert return_case_effect("resolved", "exchange", "40") == 0
        assert return_case_effect("resolved", "damaged", "40") == 0
        assert return_case_effect("pending", "deduct_value", "40") == 0

    def test_direction(self):
        assert balance_direction(Decimal("1")) == "debit"
        assert balance_direction(Decimal("-1")) == "credit"
        assert balance_direction(Decimal("0")) == "zero"


@pytest.mark.unit
class TestBalance:

    def test_full_history(self):
        result = compute_balance(_history())
        # 1000 + 500 − 300 − 100 − 50
        assert result.balance == Decimal("1050")
        assert result.direction == "debit"
        assert result.balance_egp == Decimal("1050.00")

    def test_events_are_chronological_with_running_balance(self):
        result = compute_balance(_history())
        kinds = [e.kind for e in result.events]
        assert kinds[0] == "opening"
        assert "return_case" in kinds
        # Pending case contributes no event
        assert len(result.events) == 7
        running = [e.running_balance for e in result.events]
        assert running[:3] == [Decimal("1000"), Decimal("1500"), Decimal("1200")]
        assert running[-1] == Decimal("1050")

    def test_storage_order_does_not_change_result(self):
        forward = compute_balance(_history())
        backward = compute_balance(list(reversed(_history())))
        assert backward.balance == forward.balance
        assert [(e.kind, e.source_id) for e in backward.events] == [
            (e.kind, e.source_id) for e in forward.events
        ]

    def test_same_day_events_order_by_creation(self):
        on = date(2025, 3, 1)
        payment = _payment("40", on, "p1")
        payment.created_at = datetime(2025, 3, 1, 8)
        invoice = _invoice("sale", "100", on, "i1")
        invoice.created_at = datetime(2025, 3, 1, 9)
        first = compute_balance(build_events(invoices=[invoice], payments=[payment]))
        second = compute_balance(build_events(payments=[payment], invoices=[invoice]))
        assert [e.source_id for e in first.events] == ["p1", "i1"]
        assert [e.source_id for e in second.events] == ["p1", "i1"]
        assert first.balance == second.balance == Decimal("60")

    def test_moving_an_event_changes_running_sequence(self):
        before = compute_balance(_history())
        moved = _history()
        payment = next(e for e in moved if e.kind == "payment")
        payment.event_date = date(2025, 1, 13)
        after = compute_balance(moved)
        assert after.balance == before.balance
        assert [e.running_balance for e in after.events] != [
            e.running_balance for e in before.events
        ]

    def test_as_of_excludes_later_events(self):
        result = compute_balance(_history(), as_of=date(2025, 1, 10))
        assert result.balance == Decimal("1200")

    def test_credit_opening_balance(self):
        events = build_events(opening_balance=Decimal("200"), opening_balance_type="credit")
        result = compute_balance(events)
        assert result.balance == Decimal("-200")
        assert result.direction == "credit"
        assert result.balance_egp == Decimal("200.00")

    def test_zero_opening_balance_adds_no_event(self):
        assert build_events(opening_balance=Decimal("0")) == []
        assert compute_balance([]).direction == "zero"

    def test_opening_sorts_before_same_day_invoice(self):
        events = build_events(
            invoices=[_invoice("sale", "10", date(2025, 1, 1), "i1")],
            opening_balance=Decimal("5"),
            opening_date=date(2025, 1, 1),
        )
        result = compute_balance(events)
        assert [e.kind for e in result.events] == ["opening", "invoice"]


@pytest.mark.unit
class TestResolveReturnCase:

    def test_resolves_pending_case(self):
        case = SimpleNamespace(status="pending", resolution=None, margin_egp=None,
                               resolution_note=None, resolved_at=None, resolved_by=None)
        now = datetime(2025, 2, 1, 12)
        resolve_return_case(case, "12.345", resolution_note="agreed", resolved_by="u1", now=now)
        assert case.status == "resolved"
        assert case.resolution == "deduct_value"
        assert case.margin_egp == Decimal("12.35")
        assert case.resolved_at == now
        assert case.resolved_by == "u1"

    def test_resolved_case_is_immutable(self):
        case = SimpleNamespace(status="resolved")
        with pytest.raises(ConflictError):
            resolve_return_case(case, "10")

    @pytest.mark.parametrize("margin", [None, "-1", "abc"])
    def test_margin_must_be_non_negative(self, margin):
        case = SimpleNamespace(status="pending")
        with pytest.raises(ValidationError):
            resolve_return_case(case, margin)

    def test_zero_margin_allowed(self):
        case = SimpleNamespace(status="pending")
        resolve_return_case(case, 0, resolution="exchange")
        assert case.margin_egp == Decimal("0.00")
        assert case.resolution == "exchange"

    def test_unknown_resolution(self):
        case = SimpleNamespace(status="pending")
        with pytest.raises(ValidationError):
            resolve_return_case(case, "5", resolution="refund")

    @pytest.mark.parametrize("resolution", ["exchange", "damaged"])
    def test_non_deducting_resolution_stores_zero_margin(self, resolution):
        case = SimpleNamespace(status="pending")
        resolve_return_case(case, "40", resolution=resolution)
        assert case.margin_egp == Decimal("0.00")
        assert return_case_effect(case.status, case.resolution, case.margin_egp) == 0
