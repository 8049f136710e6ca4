"""Withholding tax projection for CDI-indexed boxes.

Two taxes apply to the accrued profit, in order:

1. IOF (short-term financial-transaction tax), regressive over the first
   29 days of holding, zero from day 30 (Decreto 6.306/2007, Anexo).
2. IR (income tax), step-down by total holding days
   (Lei 11.033/2004, art. 1):
   - up to 180 days:  22.5%
   - 181 to 360:      20.0%
   - 361 to 720:      17.5%
   - above 720:       15.0%

IR is charged on the profit left after IOF.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from savings.money import ZERO, round2

# Share of profit taken by IOF, indexed by whole holding days 1..29
IOF_REGRESSIVE_TABLE: dict[int, Decimal] = {
    day: Decimal(pct) / Decimal("100")
    for day, pct in enumerate(
        (
            "96", "93", "90", "86", "83", "80", "76", "73", "70", "66",
            "63", "60", "56", "53", "50", "46", "43", "40", "36", "33",
            "30", "26", "23", "20", "16", "13", "10", "6", "3",
        ),
        start=1,
    )
}

IR_BRACKETS: tuple[tuple[int, Decimal], ...] = (
    (180, Decimal("0.225")),
    (360, Decimal("0.20")),
    (720, Decimal("0.175")),
)
IR_LONG_TERM_RATE = Decimal("0.15")


def iof_rate(holding_days: int) -> Decimal:
    """IOF rate for a holding period; 0 for day <= 0 and day >= 30."""
    return IOF_REGRESSIVE_TABLE.get(holding_days, ZERO)


def income_tax_rate(holding_days: int) -> Decimal:
    """IR rate for a total holding period in days."""
    for limit, rate in IR_BRACKETS:
        if holding_days <= limit:
            return rate
    return IR_LONG_TERM_RATE


def holding_days(first_contribution_at: datetime | None, now: datetime) -> int:
    """Whole calendar days held, counting the first day as day 1.

    0 when the box never received a contribution.
    """
    if first_contribution_at is None:
        return 0
    elapsed = (now - first_contribution_at) // timedelta(days=1)
    return max(elapsed + 1, 0)


@dataclass(frozen=True)
class TaxProjection:
    """Point-in-time net value of a box if fully redeemed."""

    holding_days: int
    gross_profit: Decimal
    iof_rate: Decimal
    iof_tax: Decimal
    profit_after_iof: Decimal
    ir_rate: Decimal
    ir_tax: Decimal
    total_tax: Decimal
    net_current_value: Decimal
    net_profit: Decimal


class TaxEngine:
    """Projects IOF and IR withholding on a box's accrued profit."""

    def project(
        self,
        current_value: Decimal,
        principal_value: Decimal,
        holding_days: int,
    ) -> TaxProjection:
        """Compute the tax breakdown for redeeming ``current_value``.

        Args:
            current_value: Present gross balance.
            principal_value: Cost basis of that balance.
            holding_days: Whole days since the first contribution.

        Returns:
            TaxProjection with net value, net profit and each tax component.
        """
        gross_profit = max(ZERO, current_value - principal_value)
        iof = iof_rate(holding_days)
        iof_tax = round2(gross_profit * iof)
        profit_after_iof = max(ZERO, gross_profit - iof_tax)

        ir = income_tax_rate(holding_days)
        ir_tax = round2(profit_after_iof * ir)
        total_tax = iof_tax + ir_tax

        net_current_value = round2(current_value - total_tax)
        net_profit = max(ZERO, round2(net_current_value - principal_value))

        return TaxProjection(
            holding_days=holding_days,
            gross_profit=round2(gross_profit),
            iof_rate=iof,
            iof_tax=iof_tax,
            profit_after_iof=round2(profit_after_iof),
            ir_rate=ir,
            ir_tax=ir_tax,
            total_tax=total_tax,
            net_current_value=net_current_value,
            net_profit=net_profit,
        )

    def untaxed(self, current_value: Decimal, principal_value: Decimal) -> TaxProjection:
        """Projection for boxes with no investment: nothing is withheld."""
        return TaxProjection(
            holding_days=0,
            gross_profit=ZERO,
            iof_rate=ZERO,
            iof_tax=ZERO,
            profit_after_iof=ZERO,
            ir_rate=ZERO,
            ir_tax=ZERO,
            total_tax=ZERO,
            net_current_value=current_value,
            net_profit=ZERO,
        )
