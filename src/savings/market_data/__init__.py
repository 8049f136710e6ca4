"""Market data layer -- benchmark rate fetching and process-wide caching."""

from savings.market_data.rate_cache import RateCache
from savings.market_data.rate_source import (
    BcbRateSource,
    annual_to_daily_rate,
    daily_to_annual_percent,
)

__all__ = ["BcbRateSource", "RateCache", "annual_to_daily_rate", "daily_to_annual_percent"]
