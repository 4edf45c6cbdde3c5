"""Movement, payment-method and party-balance reports for import shipments.

The movement report merges two streams per shipment:

  * cost rows, one per cost component with a positive value (goods cost
    is attributed to the shipment's first supplier, everything else to
    its shipping company), dated at the shipment's purchase date;
  * payment rows, one per ShipmentPayment plus one per goods
    PaymentAllocation (tagged `is_allocation`).

Filters are applied before totals are computed, so totals always
describe exactly the rows returned.  Allocation rows are informational
and stay out of the paid totals unless the report is filtered to
allocations, otherwise a shipping company's goods payment would count
twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Iterable

from tradeledger.services.allocation import GOODS_COST
from tradeledger.services.currency import ZERO, currency_totals, round2, to_decimal

EPSILON = Decimal("0.0001")

# Cost movement type → (shipment RMB column, shipment EGP column, party type)
COST_MOVEMENTS = {
    "goods_cost": ("purchase_cost_rmb", "purchase_cost_egp", "supplier"),
    "shipping_cost": ("shipping_cost_rmb", "shipping_cost_egp", "shipping_company"),
    "commission": ("commission_cost_rmb", "commission_cost_egp", "shipping_company"),
    "customs": (None, "customs_cost_egp", "shipping_company"),
    "takhreeg": (None, "takhreeg_cost_egp", "shipping_company"),
}
PAYMENT = "payment"
ALLOCATION = "allocation"

MOVEMENT_LABELS = {
    "goods_cost": "تكلفة بضاعة",
    "shipping_cost": "تكلفة شحن",
    "commission": "عمولة",
    "customs": "جمرك",
    "takhreeg": "تخريج",
    PAYMENT: "دفعة",
    ALLOCATION: "تسوية/توزيع تكلفة",
}

PAYMENT_STATUSES = ("unpaid", "paid", "partial")


@dataclass
class MovementFilters:
    date_from: date | None = None
    date_to: date | None = None
    shipment_id: str | None = None
    party_type: str | None = None
    party_id: str | None = None
    movement_type: str | None = None
    cost_component: str | None = None
    payment_method: str | None = None
    shipment_status: str | None = None
    payment_status: str | None = None
    include_archived: bool = False


def _start(d: date) -> datetime:
    return datetime.combine(d, time.min)


def _end(d: date) -> datetime:
    return datetime.combine(d, time.max)


def _as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return _start(value)


def shipment_payment_status(shipment) -> str:
    cost = to_decimal(shipment.final_total_cost_egp)
    paid = to_decimal(shipment.total_paid_egp)
    balance = max(ZERO, cost - paid)
    if paid <= EPSILON:
        return "unpaid"
    if balance <= EPSILON:
        return "paid"
    return "partial"


def _supplier_ids(shipment) -> list[str]:
    ids = []
    for item in shipment.items:
        if item.supplier_id and item.supplier_id not in ids:
            ids.append(item.supplier_id)
    return ids


def _wants(movement_type: str | None, candidate: str) -> bool:
    return not movement_type or movement_type in ("all", candidate)


def _filter_shipments(shipments: Iterable, f: MovementFilters) -> tuple[list, list]:
    """Return (base shipments, party-filtered shipments)."""
    result = list(shipments)
    if not f.include_archived:
        result = [s for s in result if s.status != "archived"]
    if f.shipment_status and f.shipment_status != "all":
        result = [s for s in result if s.status == f.shipment_status]
    if f.date_from:
        result = [s for s in result if s.purchase_date and s.purchase_date >= f.date_from]
    if f.date_to:
        result = [s for s in result if s.purchase_date and s.purchase_date <= f.date_to]
    if f.shipment_id:
        result = [s for s in result if s.id == f.shipment_id]

    base = list(result)

    if f.party_type and f.party_id:
        if f.party_type == "supplier":
            result = [s for s in result if f.party_id in _supplier_ids(s)]
        else:
            result = [s for s in result if s.shipping_company_id == f.party_id]

    if f.payment_status and f.payment_status != "all":
        result = [s for s in result if shipment_payment_status(s) == f.payment_status]

    return base, result


def build_movement_report(
    shipments: Iterable,
    payments: Iterable,
    supplier_names: dict[str, str] | None = None,
    company_names: dict[str, str] | None = None,
    user_names: dict[str, str] | None = None,
    filters: MovementFilters | None = None,
) -> dict:
    f = filters or MovementFilters()
    supplier_names = supplier_names or {}
    company_names = company_names or {}
    user_names = user_names or {}

    all_shipments = {s.id: s for s in shipments}
    base, filtered = _filter_shipments(all_shipments.values(), f)
    base_ids = {s.id for s in base}
    filtered_ids = {s.id for s in filtered}

    movements: list[dict] = []

    # ── Cost rows ────────────────────────────────────────────
    for s in filtered:
        suppliers = _supplier_ids(s)
        first_supplier = suppliers[0] if suppliers else None
        for movement_type, (rmb_col, egp_col, party_type) in COST_MOVEMENTS.items():
            rmb = to_decimal(getattr(s, rmb_col)) if rmb_col else ZERO
            egp = to_decimal(getattr(s, egp_col))
            if rmb <= 0 and egp <= 0:
                continue
            if f.party_type and party_type != f.party_type:
                continue
            if not _wants(f.movement_type, movement_type):
                continue

            if party_type == "supplier":
                party_id, party_name = first_supplier, supplier_names.get(first_supplier)
            else:
                party_id = s.shipping_company_id
                party_name = company_names.get(party_id)

            movements.append({
                "date": _as_datetime(s.purchase_date or s.created_at),
                "shipment_id": s.id,
                "shipment_code": s.shipment_code,
                "shipment_name": s.shipment_name,
                "party_type": party_type,
                "party_id": party_id,
                "party_name": party_name,
                "movement_type": movement_type,
                "movement_label": MOVEMENT_LABELS[movement_type],
                "cost_component": None,
                "payment_method": None,
                "original_currency": "RMB" if rmb > 0 else "EGP",
                "amount_original": rmb if rmb > 0 else egp,
                "amount_rmb": rmb if rmb > 0 else None,
                "amount_egp": ZERO if rmb > 0 else egp,
                "direction": "cost",
                "is_allocation": False,
                "payment_id": None,
                "user_name": None,
                "attachment_url": None,
                "attachment_original_name": None,
            })

    # ── Payment rows ─────────────────────────────────────────
    payments = [p for p in payments if p.shipment_id in base_ids]

    def _date_ok(p) -> bool:
        if f.date_from and p.payment_date < _start(f.date_from):
            return False
        if f.date_to and p.payment_date > _end(f.date_to):
            return False
        return True

    for p in payments:
        if f.party_type and f.party_id:
            if p.party_type != f.party_type or p.party_id != f.party_id:
                continue
        elif p.shipment_id not in filtered_ids:
            continue
        if not _date_ok(p):
            continue
        if f.cost_component and p.cost_component != f.cost_component:
            continue
        if f.payment_method and p.payment_method != f.payment_method:
            continue
        if not _wants(f.movement_type, PAYMENT):
            continue

        shipment = all_shipments[p.shipment_id]
        names = company_names if p.party_type == "shipping_company" else supplier_names
        is_rmb = p.payment_currency == "RMB"
        movements.append({
            "date": p.payment_date,
            "shipment_id": shipment.id,
            "shipment_code": shipment.shipment_code,
            "shipment_name": shipment.shipment_name,
            "party_type": p.party_type,
            "party_id": p.party_id,
            "party_name": names.get(p.party_id),
            "movement_type": PAYMENT,
            "movement_label": MOVEMENT_LABELS[PAYMENT],
            "cost_component": p.cost_component,
            "payment_method": p.payment_method,
            "original_currency": p.payment_currency,
            "amount_original": to_decimal(p.amount_original),
            "amount_rmb": to_decimal(p.amount_original) if is_rmb else None,
            "amount_egp": ZERO if is_rmb else to_decimal(p.amount_egp),
            "direction": "payment",
            "is_allocation": False,
            "payment_id": p.id,
            "user_name": user_names.get(p.created_by),
            "attachment_url": p.attachment_url,
            "attachment_original_name": p.attachment_original_name,
        })

    # ── Allocation rows ──────────────────────────────────────
    for p in payments:
        if not _date_ok(p):
            continue
        if f.cost_component and f.cost_component != GOODS_COST:
            continue
        if f.party_type and f.party_id and f.party_type != "supplier":
            continue
        if not _wants(f.movement_type, ALLOCATION):
            continue
        shipment = all_shipments[p.shipment_id]
        for a in p.allocations:
            if a.component != GOODS_COST or a.currency != "RMB":
                continue
            if f.party_type and f.party_id:
                if a.supplier_id != f.party_id:
                    continue
            elif a.shipment_id not in filtered_ids:
                continue
            amount = round2(a.allocated_amount)
            movements.append({
                "date": p.payment_date,
                "shipment_id": shipment.id,
                "shipment_code": shipment.shipment_code,
                "shipment_name": shipment.shipment_name,
                "party_type": "supplier",
                "party_id": a.supplier_id,
                "party_name": supplier_names.get(a.supplier_id),
                "movement_type": ALLOCATION,
                "movement_label": MOVEMENT_LABELS[ALLOCATION],
                "cost_component": GOODS_COST,
                "payment_method": p.payment_method,
                "original_currency": "RMB",
                "amount_original": amount,
                "amount_rmb": amount,
                "amount_egp": ZERO,
                "direction": "payment",
                "is_allocation": True,
                "payment_id": p.id,
                "user_name": user_names.get(p.created_by),
                "attachment_url": p.attachment_url,
                "attachment_original_name": p.attachment_original_name,
            })

    movements.sort(key=lambda m: m["date"])

    include_allocations = f.movement_type == ALLOCATION
    cost_egp, cost_rmb = currency_totals(m for m in movements if m["direction"] == "cost")
    paid_egp, paid_rmb = currency_totals(
        m for m in movements
        if m["direction"] == "payment" and (include_allocations or not m["is_allocation"])
    )

    return {
        "movements": movements,
        "total_cost_egp": round2(cost_egp),
        "total_paid_egp": round2(paid_egp),
        "net_movement": round2(cost_egp - paid_egp),
        "total_cost_rmb": round2(cost_rmb),
        "total_paid_rmb": round2(paid_rmb),
        "net_movement_rmb": round2(cost_rmb - paid_rmb),
    }


def build_payment_methods_report(
    payments: Iterable,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[dict]:
    stats: dict[str, dict] = {}
    for p in payments:
        if date_from and p.payment_date < _start(date_from):
            continue
        if date_to and p.payment_date > _end(date_to):
            continue
        method = p.payment_method or "other"
        row = stats.setdefault(
            method, {"payment_method": method, "payment_count": 0, "egp": ZERO, "rmb": ZERO}
        )
        row["payment_count"] += 1
        is_rmb = p.payment_currency == "RMB"
        egp, rmb = currency_totals([{
            "original_currency": p.payment_currency,
            "amount_egp": p.amount_egp,
            "amount_rmb": p.amount_original if is_rmb else None,
        }])
        row["egp"] += egp
        row["rmb"] += rmb

    return [
        {
            "payment_method": row["payment_method"],
            "payment_count": row["payment_count"],
            "total_amount_egp": round2(row["egp"]),
            "total_amount_rmb": round2(row["rmb"]),
        }
        for row in stats.values()
    ]


def build_supplier_balances(
    shipments: Iterable,
    payments: Iterable,
    supplier_names: dict[str, str],
    include_archived: bool = False,
) -> list[dict]:
    """Goods cost vs goods paid per supplier across shipments.

    Costs are the suppliers' item totals converted at each shipment's
    purchase rate; payments are direct supplier goods payments plus
    allocations received from shipping-company payments.
    """
    rows: dict[str, dict] = {}

    def _row(supplier_id):
        return rows.setdefault(supplier_id, {
            "party_id": supplier_id,
            "party_name": supplier_names.get(supplier_id),
            "shipment_ids": set(),
            "cost_rmb": ZERO, "cost_egp": ZERO,
            "paid_rmb": ZERO, "paid_egp": ZERO,
        })

    included = {}
    for s in shipments:
        if s.status == "archived" and not include_archived:
            continue
        included[s.id] = s
        rate = to_decimal(s.purchase_rmb_to_egp_rate)
        for item in s.items:
            if not item.supplier_id:
                continue
            row = _row(item.supplier_id)
            row["shipment_ids"].add(s.id)
            row["cost_rmb"] += to_decimal(item.total_purchase_cost_rmb)
            row["cost_egp"] += to_decimal(item.total_purchase_cost_rmb) * rate

    for p in payments:
        shipment = included.get(p.shipment_id)
        if shipment is None:
            continue
        rate = to_decimal(shipment.purchase_rmb_to_egp_rate)
        if p.party_type == "supplier" and p.cost_component == GOODS_COST and p.party_id:
            row = _row(p.party_id)
            row["paid_egp"] += to_decimal(p.amount_egp)
            if p.payment_currency == "RMB":
                row["paid_rmb"] += to_decimal(p.amount_original)
            elif rate > 0:
                row["paid_rmb"] += to_decimal(p.amount_egp) / rate
        for a in p.allocations:
            row = _row(a.supplier_id)
            row["paid_rmb"] += to_decimal(a.allocated_amount)
            row["paid_egp"] += to_decimal(a.allocated_amount) * rate

    return [_balance_row(row) for row in rows.values()]


def build_shipping_company_balances(
    shipments: Iterable,
    payments: Iterable,
    company_names: dict[str, str],
    include_archived: bool = False,
) -> list[dict]:
    """Shipping, commission, customs and takhreeg cost vs payments per
    shipping company.  Goods payments made through a company are counted
    against the suppliers they were allocated to, not here."""
    rows: dict[str, dict] = {}
    included = {}
    for s in shipments:
        if s.status == "archived" and not include_archived:
            continue
        included[s.id] = s
        if not s.shipping_company_id:
            continue
        row = rows.setdefault(s.shipping_company_id, {
            "party_id": s.shipping_company_id,
            "party_name": company_names.get(s.shipping_company_id),
            "shipment_ids": set(),
            "cost_rmb": ZERO, "cost_egp": ZERO,
            "paid_rmb": ZERO, "paid_egp": ZERO,
        })
        row["shipment_ids"].add(s.id)
        row["cost_rmb"] += to_decimal(s.shipping_cost_rmb) + to_decimal(s.commission_cost_rmb)
        row["cost_egp"] += (
            to_decimal(s.shipping_cost_egp)
            + to_decimal(s.commission_cost_egp)
            + to_decimal(s.customs_cost_egp)
            + to_decimal(s.takhreeg_cost_egp)
        )

    for p in payments:
        if p.shipment_id not in included or p.party_type != "shipping_company":
            continue
        if p.cost_component == GOODS_COST or p.party_id not in rows:
            continue
        row = rows[p.party_id]
        row["paid_egp"] += to_decimal(p.amount_egp)
        if p.payment_currency == "RMB":
            row["paid_rmb"] += to_decimal(p.amount_original)

    return [_balance_row(row) for row in rows.values()]


def _balance_row(row: dict) -> dict:
    return {
        "party_id": row["party_id"],
        "party_name": row["party_name"],
        "shipment_count": len(row["shipment_ids"]),
        "total_cost_rmb": round2(row["cost_rmb"]),
        "total_cost_egp": round2(row["cost_egp"]),
        "total_paid_rmb": round2(row["paid_rmb"]),
        "total_paid_egp": round2(row["paid_egp"]),
        "balance_egp": round2(max(ZERO, row["cost_egp"] - row["paid_egp"])),
        "balance_rmb": round2(max(ZERO, row["cost_rmb"] - row["paid_rmb"])),
    }
