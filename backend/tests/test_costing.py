"""Shipment cost aggregation and missing-piece pricing tests.

Reference shipment used throughout:

    item A: 10 CTN × 10 PCS at 5 RMB, customs 1 EGP/pc, takhreeg 2 EGP/ctn
    item B:  5 CTN × 20 PCS at 10 RMB, customs 1 EGP/pc, takhreeg 2 EGP/ctn
    purchase rate 7, discount 100 RMB
    commission 2 %, 10 m² at 5 USD, USD→RMB 7, RMB→EGP 7
"""

from decimal import Decimal

import pytest

from tradeledger.middleware.exceptions import InvalidRateError, ValidationError
from tradeledger.services.costing import (
    ItemInput,
    ShippingInput,
    clamp_missing_pieces,
    compute_shipment_costs,
    landed_unit_cost_rmb,
    price_missing_pieces,
)


def _items(missing_a: int = 0):
    return [
        ItemInput(
            cartons_ctn=10,
            pieces_per_carton_pcs=10,
            purchase_price_per_piece_rmb=Decimal("5"),
            customs_cost_per_piece_egp=Decimal("1"),
            takhreeg_cost_per_carton_egp=Decimal("2"),
            missing_pieces=missing_a,
            supplier_id="sup-a",
            ref="a",
        ),
        ItemInput(
            cartons_ctn=5,
            pieces_per_carton_pcs=20,
            purchase_price_per_piece_rmb=Decimal("10"),
            customs_cost_per_piece_egp=Decimal("1"),
            takhreeg_cost_per_carton_egp=Decimal("2"),
            supplier_id="sup-b",
            ref="b",
        ),
    ]


SHIPPING = ShippingInput(
    commission_rate_percent=Decimal("2"),
    shipping_area_sqm=Decimal("10"),
    shipping_cost_per_sqm_usd=Decimal("5"),
    usd_to_rmb_rate=Decimal("7"),
    rmb_to_egp_rate=Decimal("7"),
)


@pytest.mark.unit
class TestItemCosts:

    def test_item_totals(self):
        costs = compute_shipment_costs(_items(), Decimal("7"))
        a, b = costs.items
        assert a.total_pieces_cou == 100
        assert a.total_purchase_cost_rmb == Decimal("500.00")
        assert a.total_customs_cost_egp == Decimal("100.00")
        assert a.total_takhreeg_cost_egp == Decimal("20.00")
        assert b.total_purchase_cost_rmb == Decimal("1000.00")
        assert b.total_takhreeg_cost_egp == Decimal("10.00")

    def test_no_items_rejected(self):
        with pytest.raises(ValidationError):
            compute_shipment_costs([], Decimal("7"))

    def test_negative_price_rejected(self):
        item = ItemInput(cartons_ctn=1, pieces_per_carton_pcs=1, purchase_price_per_piece_rmb=Decimal("-1"))
        with pytest.raises(ValidationError):
            compute_shipment_costs([item], Decimal("7"))

    def test_zero_purchase_rate_rejected(self):
        with pytest.raises(InvalidRateError):
            compute_shipment_costs(_items(), Decimal("0"))


@pytest.mark.unit
class TestShipmentCosts:

    def test_goods_only(self):
        costs = compute_shipment_costs(_items(), Decimal("7"))
        assert costs.total_pieces == 200
        assert costs.purchase_cost_rmb == Decimal("1500.00")
        assert costs.purchase_cost_egp == Decimal("10500")
        assert costs.commission_cost_rmb == 0
        assert costs.shipping_cost_egp == 0
        # goods + customs + takhreeg
        assert costs.final_total_cost_egp == Decimal("10730")

    def test_full_shipment(self):
        costs = compute_shipment_costs(
            _items(), Decimal("7"), shipping=SHIPPING, partial_discount_rmb=Decimal("100")
        )
        assert costs.discount_egp == Decimal("700")
        assert costs.commission_cost_rmb == Decimal("30")
        assert costs.commission_cost_egp == Decimal("210")
        assert costs.shipping_cost_usd == Decimal("50")
        assert costs.shipping_cost_rmb == Decimal("350")
        assert costs.shipping_cost_egp == Decimal("2450")
        assert costs.shared_extras_egp == Decimal("2890")
        # 10500 − 700 + 210 + 2450 + 200 + 30
        assert costs.final_total_cost_egp == Decimal("12690")

    def test_shipment_columns_are_rounded(self):
        costs = compute_shipment_costs(_items(), Decimal("7.1234"), shipping=SHIPPING)
        columns = costs.shipment_columns()
        for value in columns.values():
            assert value == value.quantize(Decimal("0.01"))
        assert columns["purchase_cost_egp"] == Decimal("10685.10")

    def test_negative_discount_rejected(self):
        with pytest.raises(ValidationError):
            compute_shipment_costs(_items(), Decimal("7"), partial_discount_rmb=Decimal("-5"))


@pytest.mark.unit
class TestMissingPieces:

    def test_unit_cost_includes_share_of_extras(self):
        costs = compute_shipment_costs(_items(), Decimal("7"), shipping=SHIPPING)
        a, b = costs.items
        assert a.piece_ratio == Decimal("0.5")
        assert a.share_of_extras_egp == Decimal("1445")
        # (500 × 7 + 1445) / 100
        assert a.unit_cost_egp == Decimal("49.45")
        # (1000 × 7 + 1445) / 100
        assert b.unit_cost_egp == Decimal("84.45")

    def test_missing_pieces_reduce_final_total(self):
        costs = compute_shipment_costs(_items(missing_a=10), Decimal("7"), shipping=SHIPPING)
        assert costs.items[0].missing_cost_egp == Decimal("494.50")
        assert costs.missing_cost_egp == Decimal("494.50")
        # 10500 + 210 + 2450 + 200 + 30 − 494.50
        assert costs.final_total_cost_egp == Decimal("12895.50")

    def test_reprice_matches_fresh_computation(self):
        costs = compute_shipment_costs(_items(), Decimal("7"), shipping=SHIPPING)
        price_missing_pieces(costs, {"a": 10})
        fresh = compute_shipment_costs(_items(missing_a=10), Decimal("7"), shipping=SHIPPING)
        assert costs.final_total_cost_egp == fresh.final_total_cost_egp
        assert costs.missing_cost_egp == fresh.missing_cost_egp

    def test_reprice_clamps_to_available_pieces(self):
        costs = compute_shipment_costs(_items(), Decimal("7"), shipping=SHIPPING)
        price_missing_pieces(costs, {"a": 500, "b": -3})
        a, b = costs.items
        assert a.missing_pieces == 100
        assert b.missing_pieces == 0
        assert a.missing_cost_egp == Decimal("4945.00")

    def test_reprice_unknown_item(self):
        costs = compute_shipment_costs(_items(), Decimal("7"))
        with pytest.raises(ValidationError):
            price_missing_pieces(costs, {"zzz": 1})

    def test_clamp(self):
        assert clamp_missing_pieces(5, 3) == 3
        assert clamp_missing_pieces(-2, 3) == 0
        assert clamp_missing_pieces(2, 3) == 2

    def test_landed_unit_cost_rmb(self):
        assert landed_unit_cost_rmb(Decimal("49.45"), Decimal("7")) == Decimal("49.45") / Decimal("7")
        assert landed_unit_cost_rmb(Decimal("49.45"), Decimal("0")) == 0
