"""Payment allocation rules.

Auto-allocation lets a shipping company's RMB goods payment settle the
shipment's suppliers: the amount is split across the suppliers'
outstanding goods balances proportionally to each supplier's goods
total, rounding shares to cents and pushing the rounding remainder onto
the largest share.  Shares that would overpay a supplier are capped and
the leftover is redistributed over the suppliers still owed.

Supplier goods summary:
    total      = Σ purchase RMB of the supplier's items in the shipment
    paid       = Σ RMB goods payments to the supplier (amount_original)
               + Σ EGP goods payments to the supplier / their recorded RMB rate
               + Σ goods allocations to the supplier
    remaining  = total − paid   (negative = overpaid; never clamped here)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from tradeledger.middleware.exceptions import ValidationError
from tradeledger.services.currency import ZERO, round2, to_decimal

GOODS_COST = "goods_cost"
EPSILON = Decimal("0.0001")
CENT = Decimal("0.01")


# ── Eligibility ──────────────────────────────────────────────

def should_show_auto_allocation_section(
    cost_component: str | None,
    party_type: str | None,
    shipment_id,
    shipping_company_id,
) -> bool:
    return bool(
        cost_component == GOODS_COST
        and party_type == "shipping_company"
        and shipment_id
        and shipping_company_id
    )


def can_auto_allocate_payment(
    cost_component: str | None,
    party_type: str | None,
    shipment_id,
    shipping_company_id,
    currency: str | None,
) -> bool:
    return should_show_auto_allocation_section(
        cost_component, party_type, shipment_id, shipping_company_id
    ) and currency == "RMB"


def should_use_supplier_goods_summary(party_type: str | None, cost_component: str | None) -> bool:
    """A supplier goods payment is bounded by the supplier's goods summary,
    not by the shipment-wide remaining balance."""
    return party_type == "supplier" and cost_component == GOODS_COST


# ── Supplier goods summary ───────────────────────────────────

@dataclass
class SupplierGoodsSummary:
    supplier_id: str
    goods_total_rmb: Decimal
    paid_rmb: Decimal

    @property
    def remaining_rmb(self) -> Decimal:
        return self.goods_total_rmb - self.paid_rmb

    @property
    def reported_remaining_rmb(self) -> Decimal:
        return round2(max(ZERO, self.remaining_rmb))

    @property
    def overpaid_rmb(self) -> Decimal:
        return round2(max(ZERO, -self.remaining_rmb))


def supplier_goods_summary(
    supplier_id: str,
    items: Iterable,
    payments: Iterable,
    allocations: Iterable,
) -> SupplierGoodsSummary:
    """Goods total and amount paid for one supplier within one shipment.

    `items` need `supplier_id` and `total_purchase_cost_rmb`; `payments`
    need `party_type`, `party_id`, `cost_component`, `payment_currency`,
    `amount_original`, `amount_egp` and `exchange_rate_to_egp`;
    `allocations` need `supplier_id`, `component`, `currency` and
    `allocated_amount`.
    """
    total = sum(
        (to_decimal(i.total_purchase_cost_rmb) for i in items if i.supplier_id == supplier_id),
        ZERO,
    )
    paid = ZERO
    for p in payments:
        if (
            p.party_type != "supplier"
            or p.party_id != supplier_id
            or p.cost_component != GOODS_COST
        ):
            continue
        if p.payment_currency == "RMB":
            paid += to_decimal(p.amount_original)
        elif p.payment_currency == "EGP":
            rate = to_decimal(p.exchange_rate_to_egp)
            if rate > 0:
                paid += to_decimal(p.amount_egp) / rate

    for a in allocations:
        if a.supplier_id == supplier_id and a.component == GOODS_COST and a.currency == "RMB":
            paid += to_decimal(a.allocated_amount)

    return SupplierGoodsSummary(supplier_id=supplier_id, goods_total_rmb=total, paid_rmb=paid)


# ── Proportional allocation ──────────────────────────────────

@dataclass
class SupplierOutstanding:
    supplier_id: str
    goods_total: Decimal
    outstanding: Decimal


@dataclass
class AllocationResult:
    allocations: list[tuple[str, Decimal]]
    suppliers: list[SupplierOutstanding]
    shipment_goods_total: Decimal
    total_outstanding: Decimal


def build_supplier_outstanding(
    items: Iterable,
    payments: Iterable = (),
    allocations: Iterable = (),
) -> list[SupplierOutstanding]:
    """Outstanding goods balance per supplier, in item order."""
    items = list(items)
    payments = list(payments)
    allocations = list(allocations)

    supplier_ids: list[str] = []
    for item in items:
        if item.supplier_id and item.supplier_id not in supplier_ids:
            supplier_ids.append(item.supplier_id)

    result = []
    for supplier_id in supplier_ids:
        summary = supplier_goods_summary(supplier_id, items, payments, allocations)
        result.append(SupplierOutstanding(
            supplier_id=supplier_id,
            goods_total=round2(summary.goods_total_rmb),
            outstanding=summary.reported_remaining_rmb,
        ))
    return result


def _adjust_remainder(
    rounded: dict[str, Decimal],
    raw: dict[str, Decimal],
    delta: Decimal,
) -> None:
    if abs(delta) < CENT or not raw:
        return
    target = max(raw.items(), key=lambda kv: kv[1])[0]
    rounded[target] = round2(rounded[target] + delta)


def allocate_shipment_goods_payment(
    payment_amount,
    suppliers: list[SupplierOutstanding],
) -> AllocationResult:
    """Split an RMB payment across suppliers' outstanding goods balances.

    Raises:
        ValidationError: the shipment has no goods, or the payment exceeds
        the total outstanding across suppliers.
    """
    shipment_goods_total = round2(sum((s.goods_total for s in suppliers), ZERO))
    total_outstanding = round2(sum((s.outstanding for s in suppliers), ZERO))

    if shipment_goods_total <= 0:
        raise ValidationError(
            "Cannot allocate: the shipment has no goods cost",
            error_code="ALLOCATION_NO_GOODS",
            details={"shipment_goods_total": str(shipment_goods_total)},
        )

    remaining_payment = round2(payment_amount)
    if remaining_payment - total_outstanding > EPSILON:
        raise ValidationError(
            "Allocation amount exceeds the suppliers' outstanding goods balance",
            error_code="ALLOCATION_EXCEEDS_OUTSTANDING",
            details={
                "payment_amount": str(remaining_payment),
                "total_outstanding": str(total_outstanding),
                "shipment_goods_total": str(shipment_goods_total),
            },
        )

    remaining_outstanding = {s.supplier_id: s.outstanding for s in suppliers}
    allocated: dict[str, Decimal] = {}
    eligible = [s for s in suppliers if s.outstanding > 0]

    while remaining_payment > EPSILON and eligible:
        basis = sum((s.goods_total for s in eligible), ZERO)
        if basis <= 0:
            break

        raw = {s.supplier_id: remaining_payment * s.goods_total / basis for s in eligible}
        rounded = {sid: round2(share) for sid, share in raw.items()}
        delta = round2(remaining_payment - sum(rounded.values(), ZERO))
        _adjust_remainder(rounded, raw, delta)

        allocated_this_round = ZERO
        for s in eligible:
            desired = rounded.get(s.supplier_id, ZERO)
            available = remaining_outstanding.get(s.supplier_id, ZERO)
            if desired <= 0 or available <= 0:
                continue
            amount = min(desired, available)
            allocated[s.supplier_id] = round2(allocated.get(s.supplier_id, ZERO) + amount)
            remaining_outstanding[s.supplier_id] = round2(available - amount)
            allocated_this_round = round2(allocated_this_round + amount)

        if allocated_this_round <= 0:
            break

        remaining_payment = round2(remaining_payment - allocated_this_round)
        eligible = [s for s in eligible if remaining_outstanding[s.supplier_id] > 0]

    return AllocationResult(
        allocations=[(sid, amount) for sid, amount in allocated.items() if amount > 0],
        suppliers=suppliers,
        shipment_goods_total=shipment_goods_total,
        total_outstanding=total_outstanding,
    )
