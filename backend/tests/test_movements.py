"""Movement report and party balance tests."""

from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from tradeledger.services.movements import (
    MovementFilters,
    build_movement_report,
    build_payment_methods_report,
    build_shipping_company_balances,
    build_supplier_balances,
    shipment_payment_status,
)


def _shipment(ident="s1", status="received", paid="4400", **overrides):
    values = dict(
        id=ident,
        status=status,
        shipment_code=f"SHP-{ident}",
        shipment_name=f"Shipment {ident}",
        purchase_date=date(2025, 3, 1),
        created_at=datetime(2025, 3, 1, 8),
        shipping_company_id="co-1",
        items=[SimpleNamespace(supplier_id="sup-a", total_purchase_cost_rmb=Decimal("1000"))],
        purchase_rmb_to_egp_rate=Decimal("7"),
        purchase_cost_rmb=Decimal("1000"),
        purchase_cost_egp=Decimal("7000"),
        shipping_cost_rmb=Decimal("100"),
        shipping_cost_egp=Decimal("700"),
        commission_cost_rmb=Decimal("0"),
        commission_cost_egp=Decimal("0"),
        customs_cost_egp=Decimal("200"),
        takhreeg_cost_egp=Decimal("0"),
        final_total_cost_egp=Decimal("7900"),
        total_paid_egp=Decimal(paid),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def _payments(shipment_id="s1"):
    goods = SimpleNamespace(
        id="p1",
        shipment_id=shipment_id,
        party_type="shipping_company",
        party_id="co-1",
        payment_date=datetime(2025, 3, 5, 15, 30),
        cost_component="goods_cost",
        payment_method="bank_transfer",
        payment_currency="RMB",
        amount_original=Decimal("600"),
        amount_egp=Decimal("4200"),
        created_by="u1",
        attachment_url=None,
        attachment_original_name=None,
        allocations=[SimpleNamespace(
            shipment_id=shipment_id, supplier_id="sup-a", component="goods_cost",
            currency="RMB", allocated_amount=Decimal("600"),
        )],
    )
    customs = SimpleNamespace(
        id="p2",
        shipment_id=shipment_id,
        party_type="shipping_company",
        party_id="co-1",
        payment_date=datetime(2025, 3, 10, 9),
        cost_component="customs",
        payment_method="cash",
        payment_currency="EGP",
        amount_original=Decimal("200"),
        amount_egp=Decimal("200"),
        created_by="u1",
        attachment_url="/uploads/payments/r.pdf",
        attachment_original_name="r.pdf",
        allocations=[],
    )
    return [goods, customs]


NAMES = dict(
    supplier_names={"sup-a": "Supplier A"},
    company_names={"co-1": "Sea Freight"},
    user_names={"u1": "Mona"},
)


@pytest.mark.unit
class TestMovementReport:

    def test_cost_payment_and_allocation_rows(self):
        report = build_movement_report([_shipment()], _payments(), **NAMES)
        types = [m["movement_type"] for m in report["movements"]]
        assert sorted(types) == sorted(
            ["goods_cost", "shipping_cost", "customs", "payment", "payment", "allocation"]
        )
        goods = next(m for m in report["movements"] if m["movement_type"] == "goods_cost")
        assert goods["party_name"] == "Supplier A"
        assert goods["original_currency"] == "RMB"
        payment = next(m for m in report["movements"] if m["payment_id"] == "p2")
        assert payment["user_name"] == "Mona"
        assert payment["attachment_original_name"] == "r.pdf"

    def test_totals_exclude_allocation_rows(self):
        report = build_movement_report([_shipment()], _payments(), **NAMES)
        assert report["total_cost_rmb"] == Decimal("1100.00")
        assert report["total_cost_egp"] == Decimal("200.00")
        assert report["total_paid_rmb"] == Decimal("600.00")
        assert report["total_paid_egp"] == Decimal("200.00")
        assert report["net_movement"] == Decimal("0.00")
        assert report["net_movement_rmb"] == Decimal("500.00")

    def test_allocation_filter_counts_allocations(self):
        report = build_movement_report(
            [_shipment()], _payments(), filters=MovementFilters(movement_type="allocation"), **NAMES
        )
        assert [m["movement_type"] for m in report["movements"]] == ["allocation"]
        assert report["total_paid_rmb"] == Decimal("600.00")
        assert report["total_cost_rmb"] == Decimal("0.00")

    def test_date_to_is_inclusive(self):
        report = build_movement_report(
            [_shipment()], _payments(),
            filters=MovementFilters(date_to=date(2025, 3, 5), movement_type="payment"),
            **NAMES,
        )
        assert [m["payment_id"] for m in report["movements"]] == ["p1"]

    def test_supplier_filter(self):
        report = build_movement_report(
            [_shipment()], _payments(),
            filters=MovementFilters(party_type="supplier", party_id="sup-a"),
            **NAMES,
        )
        types = {m["movement_type"] for m in report["movements"]}
        assert types == {"goods_cost", "allocation"}

    def test_archived_shipments_hidden_by_default(self):
        shipments = [_shipment(status="archived")]
        assert build_movement_report(shipments, _payments())["movements"] == []
        report = build_movement_report(
            shipments, _payments(), filters=MovementFilters(include_archived=True)
        )
        assert report["movements"]

    def test_rows_sorted_by_date(self):
        report = build_movement_report([_shipment()], _payments(), **NAMES)
        dates = [m["date"] for m in report["movements"]]
        assert dates == sorted(dates)

    def test_payment_status_filter(self):
        filters = MovementFilters(payment_status="paid")
        assert build_movement_report([_shipment()], _payments(), filters=filters)["movements"] == []


@pytest.mark.unit
class TestPaymentStatus:

    @pytest.mark.parametrize("paid,expected", [
        ("0", "unpaid"),
        ("4400", "partial"),
        ("7900", "paid"),
        ("8000", "paid"),
    ])
    def test_status(self, paid, expected):
        assert shipment_payment_status(_shipment(paid=paid)) == expected


@pytest.mark.unit
class TestPaymentMethodsReport:

    def test_grouped_by_method(self):
        rows = {r["payment_method"]: r for r in build_payment_methods_report(_payments())}
        assert rows["bank_transfer"]["payment_count"] == 1
        assert rows["bank_transfer"]["total_amount_rmb"] == Decimal("600.00")
        assert rows["bank_transfer"]["total_amount_egp"] == Decimal("0.00")
        assert rows["cash"]["total_amount_egp"] == Decimal("200.00")

    def test_date_range(self):
        rows = build_payment_methods_report(_payments(), date_from=date(2025, 3, 6))
        assert [r["payment_method"] for r in rows] == ["cash"]


@pytest.mark.unit
class TestPartyBalances:

    def test_supplier_balance_counts_allocations(self):
        rows = build_supplier_balances([_shipment()], _payments(), {"sup-a": "Supplier A"})
        assert len(rows) == 1
        row = rows[0]
        assert row["party_name"] == "Supplier A"
        assert row["shipment_count"] == 1
        assert row["total_cost_egp"] == Decimal("7000.00")
        assert row["total_paid_rmb"] == Decimal("600.00")
        assert row["total_paid_egp"] == Decimal("4200.00")
        assert row["balance_egp"] == Decimal("2800.00")
        assert row["balance_rmb"] == Decimal("400.00")

    def test_shipping_company_balance_excludes_goods(self):
        rows = build_shipping_company_balances([_shipment()], _payments(), {"co-1": "Sea Freight"})
        row = rows[0]
        assert row["total_cost_rmb"] == Decimal("100.00")
        assert row["total_cost_egp"] == Decimal("900.00")
        assert row["total_paid_egp"] == Decimal("200.00")
        assert row["balance_egp"] == Decimal("700.00")
        assert row["balance_rmb"] == Decimal("100.00")

    def test_archived_excluded(self):
        rows = build_supplier_balances([_shipment(status="archived")], _payments(), {})
        assert rows == []
