"""Tax layer -- regressive IOF and IR withholding projection."""

from savings.tax.engine import TaxEngine, TaxProjection, holding_days, income_tax_rate, iof_rate

__all__ = ["TaxEngine", "TaxProjection", "holding_days", "income_tax_rate", "iof_rate"]
