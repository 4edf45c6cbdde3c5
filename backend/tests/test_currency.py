"""Currency conversion and money helper tests."""

from decimal import Decimal

import pytest

from tradeledger.middleware.exceptions import InvalidRateError, ValidationError
from tradeledger.services.currency import convert, currency_totals, round2, to_decimal


@pytest.mark.unit
class TestConvert:

    def test_multiplies_by_rate(self):
        assert convert(Decimal("100"), "RMB", "EGP", Decimal("7.15")) == Decimal("715.00")

    def test_same_currency_returns_amount(self):
        # Rate is ignored, even an invalid one
        assert convert(Decimal("12.34"), "EGP", "EGP", 0) == Decimal("12.34")

    @pytest.mark.parametrize("rate", [0, Decimal("-1"), None])
    def test_rejects_non_positive_rate(self, rate):
        with pytest.raises(InvalidRateError) as exc:
            convert(100, "USD", "RMB", rate)
        assert exc.value.error_code == "INVALID_RATE"

    def test_rejects_unknown_currency(self):
        with pytest.raises(ValidationError):
            convert(100, "EUR", "EGP", 50)

    def test_does_not_round(self):
        assert convert(Decimal("1.005"), "RMB", "EGP", Decimal("1.1")) == Decimal("1.1055")


@pytest.mark.unit
class TestMoneyHelpers:

    def test_round2_half_up(self):
        assert round2(Decimal("2.675")) == Decimal("2.68")
        assert round2(Decimal("2.665")) == Decimal("2.67")
        assert round2("10") == Decimal("10.00")

    def test_to_decimal_defaults(self):
        assert to_decimal(None) == Decimal("0")
        assert to_decimal("") == Decimal("0")
        assert to_decimal("abc", default=Decimal("5")) == Decimal("5")
        assert to_decimal(3.5) == Decimal("3.5")


@pytest.mark.unit
class TestCurrencyTotals:

    def test_totals_split_by_original_currency(self):
        rows = [
            {"original_currency": "RMB", "amount_egp": "715", "amount_rmb": "100"},
            {"original_currency": "EGP", "amount_egp": "500", "amount_rmb": "70"},
            {"original_currency": "USD", "amount_egp": "50", "amount_rmb": "7"},
        ]
        sum_egp, sum_rmb = currency_totals(rows)
        # RMB rows count in RMB only, EGP rows in EGP only, others in both
        assert sum_egp == Decimal("550")
        assert sum_rmb == Decimal("107")

    def test_empty(self):
        assert currency_totals([]) == (Decimal("0"), Decimal("0"))
