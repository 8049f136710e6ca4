"""Externally visible representation of a box.

A view is always built from a box that was just accrued to ``now``, plus
the tax projection for that instant. Forward-looking estimates apply the
same daily rate and the next day's tax rates to the current balance.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from savings.models import Box, InvestmentType
from savings.money import HUNDRED, ONE, ZERO, round2, round6
from savings.tax.engine import TaxProjection, income_tax_rate, iof_rate

NO_YIELD_LABEL = "No yield"


def investment_label(box: Box) -> str:
    """Human-readable descriptor, e.g. "CDB 110% of CDI"."""
    if box.investment_type is InvestmentType.NONE:
        return NO_YIELD_LABEL
    percentage = format(box.cdi_percentage.normalize(), "f")
    label = f"CDB {percentage}% of CDI"
    if box.auto_cdi:
        label += " (auto)"
    return label


@dataclass(frozen=True)
class BoxView:
    box: Box
    tax: TaxProjection
    daily_rate: Decimal  # effective daily rate, fraction
    estimated_daily_gross_yield: Decimal
    estimated_daily_net_yield: Decimal
    label: str

    def to_dict(self) -> dict[str, Any]:
        box = self.box
        return {
            "id": box.id,
            "familyId": box.family_id,
            "name": box.name,
            "isEmergency": box.is_emergency,
            "investmentType": box.investment_type.value,
            "autoCdi": box.auto_cdi,
            "cdiAnnualRate": str(box.cdi_annual_rate),
            "cdiPercentage": str(box.cdi_percentage),
            "label": self.label,
            "currentValue": str(box.current_value),
            "principalValue": str(box.principal_value),
            "grossProfit": str(self.tax.gross_profit),
            "netCurrentValue": str(self.tax.net_current_value),
            "netProfit": str(self.tax.net_profit),
            "holdingDays": self.tax.holding_days,
            "taxes": {
                "iofRate": str(self.tax.iof_rate),
                "iofTax": str(self.tax.iof_tax),
                "irRate": str(self.tax.ir_rate),
                "irTax": str(self.tax.ir_tax),
                "totalTax": str(self.tax.total_tax),
            },
            "dailyRatePercent": str(round6(self.daily_rate * HUNDRED)),
            "estimatedDailyGrossYield": str(self.estimated_daily_gross_yield),
            "estimatedDailyNetYield": str(self.estimated_daily_net_yield),
            "firstContributionAt": _iso(box.first_contribution_at),
            "lastYieldAppliedAt": _iso(box.last_yield_applied_at),
            "createdAt": _iso(box.created_at),
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def build_view(box: Box, tax: TaxProjection, daily_rate: Decimal) -> BoxView:
    """Assemble the view, including tomorrow's gross and net yield estimates."""
    if not box.is_invested or daily_rate <= 0:
        gross = net = ZERO
    else:
        gross = round2(box.current_value * daily_rate)
        next_day = tax.holding_days + 1
        net = round2(gross * (ONE - iof_rate(next_day)) * (ONE - income_tax_rate(next_day)))

    return BoxView(
        box=box,
        tax=tax,
        daily_rate=daily_rate,
        estimated_daily_gross_yield=gross,
        estimated_daily_net_yield=net,
        label=investment_label(box),
    )
