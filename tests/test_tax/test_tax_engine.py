"""Tests for the IOF/IR regressive tables and TaxEngine projections.

All expected values are exact Decimals rounded half-up to cents.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from savings.tax.engine import TaxEngine, holding_days, income_tax_rate, iof_rate


class TestIofRate:
    @pytest.mark.parametrize(
        "days,expected",
        [
            (1, "0.96"),
            (2, "0.93"),
            (10, "0.66"),
            (15, "0.50"),
            (20, "0.33"),
            (28, "0.06"),
            (29, "0.03"),
        ],
    )
    def test_regressive_table(self, days: int, expected: str) -> None:
        assert iof_rate(days) == Decimal(expected)

    @pytest.mark.parametrize("days", [0, -5, 30, 31, 365])
    def test_zero_outside_first_29_days(self, days: int) -> None:
        assert iof_rate(days) == Decimal("0")

    def test_never_increases(self) -> None:
        rates = [iof_rate(day) for day in range(1, 31)]
        assert rates == sorted(rates, reverse=True)


class TestIncomeTaxRate:
    @pytest.mark.parametrize(
        "days,expected",
        [
            (0, "0.225"),
            (1, "0.225"),
            (180, "0.225"),
            (181, "0.20"),
            (360, "0.20"),
            (361, "0.175"),
            (720, "0.175"),
            (721, "0.15"),
            (5000, "0.15"),
        ],
    )
    def test_brackets(self, days: int, expected: str) -> None:
        assert income_tax_rate(days) == Decimal(expected)


class TestHoldingDays:
    FIRST = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)

    def test_first_day_counts_as_one(self) -> None:
        assert holding_days(self.FIRST, self.FIRST) == 1

    def test_partial_days_are_floored(self) -> None:
        assert holding_days(self.FIRST, self.FIRST + timedelta(days=29, hours=23)) == 30

    def test_no_contribution(self) -> None:
        assert holding_days(None, self.FIRST) == 0

    def test_clock_before_first_contribution(self) -> None:
        assert holding_days(self.FIRST, self.FIRST - timedelta(hours=1)) == 0


class TestProject:
    @pytest.fixture
    def engine(self) -> TaxEngine:
        return TaxEngine()

    def test_short_term_profit(self, engine: TaxEngine) -> None:
        """R$1000 worth R$900 of principal, redeemed on day 10."""
        tax = engine.project(Decimal("1000.00"), Decimal("900.00"), holding_days=10)

        # profit 100.00, IOF 66% -> 66.00, IR 22.5% of 34.00 -> 7.65
        assert tax.gross_profit == Decimal("100.00")
        assert tax.iof_rate == Decimal("0.66")
        assert tax.iof_tax == Decimal("66.00")
        assert tax.profit_after_iof == Decimal("34.00")
        assert tax.ir_rate == Decimal("0.225")
        assert tax.ir_tax == Decimal("7.65")
        assert tax.total_tax == Decimal("73.65")
        assert tax.net_current_value == Decimal("926.35")
        assert tax.net_profit == Decimal("26.35")

    def test_long_term_profit_has_no_iof(self, engine: TaxEngine) -> None:
        tax = engine.project(Decimal("1200.00"), Decimal("1000.00"), holding_days=800)

        assert tax.iof_tax == Decimal("0.00")
        assert tax.ir_rate == Decimal("0.15")
        assert tax.ir_tax == Decimal("30.00")
        assert tax.net_current_value == Decimal("1170.00")
        assert tax.net_profit == Decimal("170.00")

    def test_loss_is_not_taxed(self, engine: TaxEngine) -> None:
        tax = engine.project(Decimal("950.00"), Decimal("1000.00"), holding_days=10)

        assert tax.gross_profit == Decimal("0.00")
        assert tax.total_tax == Decimal("0.00")
        assert tax.net_current_value == Decimal("950.00")
        assert tax.net_profit == Decimal("0")

    def test_half_cent_rounds_up(self, engine: TaxEngine) -> None:
        # 0.10 * 22.5% = 0.0225 -> 0.02; 0.30 * 22.5% = 0.0675 -> 0.07
        tax = engine.project(Decimal("100.30"), Decimal("100.00"), holding_days=100)
        assert tax.ir_tax == Decimal("0.07")

    def test_untaxed(self, engine: TaxEngine) -> None:
        tax = engine.untaxed(Decimal("500.00"), Decimal("500.00"))
        assert tax.total_tax == Decimal("0")
        assert tax.net_current_value == Decimal("500.00")
        assert tax.holding_days == 0
