"""Currency conversion and money helpers.

Rates are always expressed as "1 unit of from-currency = rate units of
to-currency", so converting is a plain multiplication.  Nothing here
rounds: callers round with `round2` at storage/presentation boundaries.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Mapping

from tradeledger.middleware.exceptions import InvalidRateError, ValidationError

SUPPORTED_CURRENCIES = ("RMB", "USD", "EGP")

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_decimal(value, default: Decimal = ZERO) -> Decimal:
    """Parse a number-ish value; None/""/garbage become `default`."""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def round2(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def convert(amount, from_currency: str, to_currency: str, rate) -> Decimal:
    """Convert `amount` using a rate quoted as from→to.

    Raises:
        InvalidRateError: rate is zero or negative.
        ValidationError: unknown currency code.
    """
    for code in (from_currency, to_currency):
        if code not in SUPPORTED_CURRENCIES:
            raise ValidationError(f"Unsupported currency: {code}", field="currency")

    amount = to_decimal(amount)
    if from_currency == to_currency:
        return amount

    rate = to_decimal(rate)
    if rate <= 0:
        raise InvalidRateError(rate)
    return amount * rate


def currency_totals(rows: Iterable[Mapping]) -> tuple[Decimal, Decimal]:
    """Sum report rows into (sum_egp, sum_rmb) by their original currency.

    RMB rows count towards the RMB total only, EGP rows towards the EGP
    total only; any other currency carries both amounts and counts in
    both totals.
    """
    sum_egp = ZERO
    sum_rmb = ZERO
    for row in rows:
        currency = row.get("original_currency")
        egp = to_decimal(row.get("amount_egp"))
        rmb = to_decimal(row.get("amount_rmb"))
        if currency == "RMB":
            sum_rmb += rmb
        elif currency == "EGP":
            sum_egp += egp
        else:
            sum_egp += egp
            sum_rmb += rmb
    return sum_egp, sum_rmb
