"""Yield layer -- business-day compound accrual."""

from savings.yields.engine import AccrualResult, YieldEngine, business_days_between

__all__ = ["AccrualResult", "YieldEngine", "business_days_between"]
