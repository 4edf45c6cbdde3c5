"""Shipment cost aggregation and missing-piece cost allocation.

This is the only place the import cost formulas live.  The shipment
write path stores its output; reports, the invoice summary, the
inventory receipt and the payment guards all read the same numbers.

Per item:
    COU                = CTN × PCS
    purchase RMB       = round2(COU × price per piece)
    customs EGP        = round2(COU × customs per piece)
    takhreeg EGP       = round2(CTN × takhreeg per carton)

Per shipment (aggregates are carried unrounded):
    purchase EGP       = Σ purchase RMB × purchase rate
    discount EGP       = partial discount RMB × purchase rate
    commission RMB     = Σ purchase RMB × commission % / 100
    commission EGP     = commission RMB × shipping RMB→EGP rate
    shipping USD       = area m² × cost per m² USD
    shipping RMB       = shipping USD × USD→RMB rate
    shipping EGP       = shipping RMB × shipping RMB→EGP rate
    final EGP          = purchase EGP − discount EGP + commission EGP
                         + shipping EGP + customs EGP + takhreeg EGP
                         − missing EGP

Missing pieces are priced at the item's landed unit cost:
    piece ratio        = item COU / Σ COU
    share of extras    = ratio × (customs + takhreeg + shipping + commission)
    unit cost EGP      = (item purchase RMB × purchase rate + share) / COU
    missing cost EGP   = round2(missing pieces × unit cost EGP)

Unit costs are derived from the current totals every time, never cached.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from tradeledger.middleware.exceptions import ValidationError
from tradeledger.services.currency import ZERO, convert, round2, to_decimal

HUNDRED = Decimal("100")


# ── Inputs ───────────────────────────────────────────────────

@dataclass
class ItemInput:
    cartons_ctn: int
    pieces_per_carton_pcs: int
    purchase_price_per_piece_rmb: Decimal
    customs_cost_per_piece_egp: Decimal | None = None
    takhreeg_cost_per_carton_egp: Decimal | None = None
    missing_pieces: int = 0
    supplier_id: str | None = None
    ref: str | None = None  # item id, carried through for callers


@dataclass
class ShippingInput:
    commission_rate_percent: Decimal
    shipping_area_sqm: Decimal
    shipping_cost_per_sqm_usd: Decimal
    usd_to_rmb_rate: Decimal
    rmb_to_egp_rate: Decimal


# ── Outputs ──────────────────────────────────────────────────

@dataclass
class ItemCosts:
    ref: str | None
    supplier_id: str | None
    cartons_ctn: int
    total_pieces_cou: int
    total_purchase_cost_rmb: Decimal
    total_customs_cost_egp: Decimal
    total_takhreeg_cost_egp: Decimal
    missing_pieces: int = 0
    piece_ratio: Decimal = ZERO
    share_of_extras_egp: Decimal = ZERO
    total_cost_egp: Decimal = ZERO
    unit_cost_egp: Decimal = ZERO
    missing_cost_egp: Decimal = ZERO


@dataclass
class ShipmentCosts:
    purchase_rate: Decimal
    items: list[ItemCosts] = field(default_factory=list)
    total_pieces: int = 0
    purchase_cost_rmb: Decimal = ZERO
    purchase_cost_egp: Decimal = ZERO
    discount_egp: Decimal = ZERO
    discounted_purchase_cost_egp: Decimal = ZERO
    commission_cost_rmb: Decimal = ZERO
    commission_cost_egp: Decimal = ZERO
    shipping_cost_usd: Decimal = ZERO
    shipping_cost_rmb: Decimal = ZERO
    shipping_cost_egp: Decimal = ZERO
    customs_cost_egp: Decimal = ZERO
    takhreeg_cost_egp: Decimal = ZERO
    missing_cost_egp: Decimal = ZERO
    final_total_cost_egp: Decimal = ZERO

    @property
    def shared_extras_egp(self) -> Decimal:
        return (
            self.customs_cost_egp
            + self.takhreeg_cost_egp
            + self.shipping_cost_egp
            + self.commission_cost_egp
        )

    def shipment_columns(self) -> dict[str, Decimal]:
        """Totals rounded to 2 places, keyed by Shipment column name."""
        return {
            "purchase_cost_rmb": round2(self.purchase_cost_rmb),
            "purchase_cost_egp": round2(self.purchase_cost_egp),
            "discount_egp": round2(self.discount_egp),
            "commission_cost_rmb": round2(self.commission_cost_rmb),
            "commission_cost_egp": round2(self.commission_cost_egp),
            "shipping_cost_rmb": round2(self.shipping_cost_rmb),
            "shipping_cost_egp": round2(self.shipping_cost_egp),
            "customs_cost_egp": round2(self.customs_cost_egp),
            "takhreeg_cost_egp": round2(self.takhreeg_cost_egp),
            "missing_cost_egp": round2(self.missing_cost_egp),
            "final_total_cost_egp": round2(self.final_total_cost_egp),
        }


# ── Item level ───────────────────────────────────────────────

def clamp_missing_pieces(n: int, total_pieces_cou: int) -> int:
    return max(0, min(int(n), total_pieces_cou))


def compute_item_costs(item: ItemInput) -> ItemCosts:
    if item.cartons_ctn < 0 or item.pieces_per_carton_pcs < 0:
        raise ValidationError("Cartons and pieces per carton must not be negative", field="items")
    price = to_decimal(item.purchase_price_per_piece_rmb)
    if price < 0:
        raise ValidationError("Purchase price must not be negative", field="items")

    cou = item.cartons_ctn * item.pieces_per_carton_pcs
    customs_per_piece = to_decimal(item.customs_cost_per_piece_egp)
    takhreeg_per_carton = to_decimal(item.takhreeg_cost_per_carton_egp)

    return ItemCosts(
        ref=item.ref,
        supplier_id=item.supplier_id,
        cartons_ctn=item.cartons_ctn,
        total_pieces_cou=cou,
        total_purchase_cost_rmb=round2(cou * price),
        total_customs_cost_egp=round2(cou * customs_per_piece),
        total_takhreeg_cost_egp=round2(item.cartons_ctn * takhreeg_per_carton),
        missing_pieces=clamp_missing_pieces(item.missing_pieces, cou),
    )


def unit_cost_egp(
    item: ItemCosts,
    total_pieces: int,
    shared_extras_egp: Decimal,
    purchase_rate: Decimal,
) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    """Landed cost of one piece of `item`.

    Returns (piece_ratio, share_of_extras, item_total_cost, unit_cost).
    """
    ratio = Decimal(item.total_pieces_cou) / Decimal(total_pieces) if total_pieces > 0 else ZERO
    share = ratio * shared_extras_egp
    item_total = item.total_purchase_cost_rmb * purchase_rate + share
    unit = item_total / Decimal(item.total_pieces_cou) if item.total_pieces_cou > 0 else ZERO
    return ratio, share, item_total, unit


def missing_cost_egp(missing_pieces: int, unit_cost: Decimal) -> Decimal:
    return round2(Decimal(missing_pieces) * unit_cost)


# ── Shipment level ───────────────────────────────────────────

def compute_shipment_costs(
    items: list[ItemInput],
    purchase_rate,
    shipping: ShippingInput | None = None,
    partial_discount_rmb=ZERO,
) -> ShipmentCosts:
    """Aggregate all costs of a shipment.

    Raises:
        ValidationError: no items, or a negative quantity/price.
        InvalidRateError: a zero or negative exchange rate.
    """
    if not items:
        raise ValidationError("at least one item required", field="items")

    purchase_rate = to_decimal(purchase_rate)
    costs = ShipmentCosts(purchase_rate=purchase_rate)
    costs.items = [compute_item_costs(item) for item in items]

    costs.total_pieces = sum(i.total_pieces_cou for i in costs.items)
    costs.purchase_cost_rmb = sum((i.total_purchase_cost_rmb for i in costs.items), ZERO)
    costs.customs_cost_egp = sum((i.total_customs_cost_egp for i in costs.items), ZERO)
    costs.takhreeg_cost_egp = sum((i.total_takhreeg_cost_egp for i in costs.items), ZERO)

    costs.purchase_cost_egp = convert(costs.purchase_cost_rmb, "RMB", "EGP", purchase_rate)
    discount_rmb = to_decimal(partial_discount_rmb)
    if discount_rmb < 0:
        raise ValidationError("Discount must not be negative", field="partial_discount_rmb")
    costs.discount_egp = convert(discount_rmb, "RMB", "EGP", purchase_rate)
    costs.discounted_purchase_cost_egp = costs.purchase_cost_egp - costs.discount_egp

    if shipping is not None:
        percent = to_decimal(shipping.commission_rate_percent)
        costs.commission_cost_rmb = costs.purchase_cost_rmb * percent / HUNDRED
        costs.commission_cost_egp = convert(
            costs.commission_cost_rmb, "RMB", "EGP", shipping.rmb_to_egp_rate
        )
        costs.shipping_cost_usd = (
            to_decimal(shipping.shipping_area_sqm) * to_decimal(shipping.shipping_cost_per_sqm_usd)
        )
        costs.shipping_cost_rmb = convert(
            costs.shipping_cost_usd, "USD", "RMB", shipping.usd_to_rmb_rate
        )
        costs.shipping_cost_egp = convert(
            costs.shipping_cost_rmb, "RMB", "EGP", shipping.rmb_to_egp_rate
        )

    extras = costs.shared_extras_egp
    for item in costs.items:
        ratio, share, total, unit = unit_cost_egp(item, costs.total_pieces, extras, purchase_rate)
        item.piece_ratio = ratio
        item.share_of_extras_egp = share
        item.total_cost_egp = total
        item.unit_cost_egp = unit
        item.missing_cost_egp = missing_cost_egp(item.missing_pieces, unit)

    costs.missing_cost_egp = sum((i.missing_cost_egp for i in costs.items), ZERO)
    costs.final_total_cost_egp = (
        costs.discounted_purchase_cost_egp
        + costs.commission_cost_egp
        + costs.shipping_cost_egp
        + costs.customs_cost_egp
        + costs.takhreeg_cost_egp
        - costs.missing_cost_egp
    )
    return costs


def price_missing_pieces(
    costs: ShipmentCosts,
    updates: dict[str, int],
) -> ShipmentCosts:
    """Re-price missing pieces for the items named in `updates`.

    `updates` maps item ref → requested missing pieces; each value is
    clamped to [0, COU].  Unit costs come from the totals in `costs`, so
    call this on freshly computed costs.  The final total is updated in
    place and `costs` is returned.
    """
    by_ref = {item.ref: item for item in costs.items}
    for ref, requested in updates.items():
        item = by_ref.get(ref)
        if item is None:
            raise ValidationError(f"Unknown shipment item: {ref}", field="updates")
        item.missing_pieces = clamp_missing_pieces(requested, item.total_pieces_cou)
        item.missing_cost_egp = missing_cost_egp(item.missing_pieces, item.unit_cost_egp)

    new_missing = sum((i.missing_cost_egp for i in costs.items), ZERO)
    costs.final_total_cost_egp += costs.missing_cost_egp - new_missing
    costs.missing_cost_egp = new_missing
    return costs


def landed_unit_cost_rmb(unit_egp: Decimal, purchase_rate) -> Decimal:
    rate = to_decimal(purchase_rate)
    return unit_egp / rate if rate > 0 else ZERO
