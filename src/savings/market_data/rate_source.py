"""Benchmark (CDI) rate source backed by the BCB SGS statistics API.

Fetches the single most recent observation of the configured series
(default 12 = daily CDI) and annualizes it over 252 business days:

    annual = ((1 + daily / 100) ** 252 - 1) * 100

One outbound GET per call, bounded by the configured timeout. Any
transport error, non-2xx status or unusable payload is raised as
RateSourceError; deciding what to do about it is the cache's job.
"""

import time
from decimal import Decimal
from urllib.parse import quote

import httpx

from savings.config import CdiSettings
from savings.exceptions import RateSourceError
from savings.logging import get_logger
from savings.models import RateSnapshot
from savings.money import HUNDRED, ONE, ZERO, round6, to_decimal

logger = get_logger(__name__)

BUSINESS_DAYS_PER_YEAR = 252


def daily_to_annual_percent(daily_percent: Decimal) -> Decimal:
    """Annualize a daily rate percentage over 252 compounding periods."""
    if daily_percent <= 0:
        return ZERO
    growth = (ONE + daily_percent / HUNDRED) ** BUSINESS_DAYS_PER_YEAR
    return round6((growth - ONE) * HUNDRED)


def annual_to_daily_rate(annual_percent: Decimal) -> Decimal:
    """Convert an annual rate percentage into a daily rate fraction.

    daily = (1 + annual / 100) ** (1 / 252) - 1, unrounded.
    """
    if annual_percent <= 0:
        return ZERO
    return (ONE + annual_percent / HUNDRED) ** (ONE / Decimal(BUSINESS_DAYS_PER_YEAR)) - ONE


class BcbRateSource:
    """Fetches the latest benchmark daily rate from the BCB SGS API.

    Args:
        settings: Series code, base URL and request timeout.
        client: Shared httpx.AsyncClient. The caller owns its lifecycle.
    """

    provider = "bcb_sgs"

    def __init__(self, settings: CdiSettings, client: httpx.AsyncClient) -> None:
        self._settings = settings
        self._client = client

    @property
    def series_code(self) -> str:
        return self._settings.series_code

    @property
    def endpoint(self) -> str:
        series = quote(self._settings.series_code, safe="")
        return f"{self._settings.base_url.rstrip('/')}/bcdata.sgs.{series}/dados/ultimos/1"

    async def fetch_latest(self) -> RateSnapshot:
        """Fetch and parse the latest observation.

        Returns:
            A fresh snapshot (no expiry set; the cache stamps that).

        Raises:
            RateSourceError: On timeout, transport error, non-2xx status,
                empty or malformed payload, or a non-positive rate.
        """
        try:
            response = await self._client.get(
                self.endpoint,
                params={"formato": "json"},
                headers={"Accept": "application/json"},
                timeout=self._settings.request_timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            raise RateSourceError(
                f"BCB request timed out after {self._settings.request_timeout_ms}ms"
            ) from exc
        except httpx.HTTPError as exc:
            raise RateSourceError(f"BCB request failed: {exc}") from exc

        if not response.is_success:
            raise RateSourceError(f"BCB HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise RateSourceError("BCB response is not valid JSON") from exc

        if not isinstance(payload, list) or not payload:
            raise RateSourceError("BCB response has no observations")

        latest = payload[-1] if isinstance(payload[-1], dict) else {}
        daily = to_decimal(latest.get("valor"), ZERO)
        daily_percent = round6(daily)
        annual_percent = daily_to_annual_percent(daily_percent)

        if daily_percent <= 0 or annual_percent <= 0:
            raise RateSourceError(f"Invalid CDI rate received from BCB: {latest.get('valor')!r}")

        reference_date = str(latest.get("data") or "").strip() or None

        logger.info(
            "cdi_rate_fetched",
            series_code=self._settings.series_code,
            reference_date=reference_date,
            daily_rate_percent=str(daily_percent),
            annual_rate_percent=str(annual_percent),
        )

        return RateSnapshot(
            daily_rate_percent=daily_percent,
            annual_rate_percent=annual_percent,
            reference_date=reference_date,
            fetched_at=time.time(),
            expires_at=None,
            provider=self.provider,
            series_code=self._settings.series_code,
        )
