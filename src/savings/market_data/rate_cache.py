"""Process-wide, time-boxed cache of the benchmark rate.

Resolution order for ``resolve_rate``:
1. Fresh snapshot (not expired) and no forced refresh -> cache hit.
2. Otherwise fetch. Concurrent callers share one in-flight fetch task,
   so the source sees at most one outstanding request.
3. On fetch failure, per caller:
   a. allow_stale and a previous snapshot exists -> that snapshot, stale=True
   b. a constant fallback annual rate is configured -> synthetic snapshot,
      fallback=True, stale=True
   c. otherwise ExternalRateUnavailable

The last good snapshot is never deleted, only replaced by the next
successful fetch, so it stays available as the stale fallback.

Each process keeps its own snapshot and TTL clock.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import replace
from decimal import Decimal

from savings.config import CdiSettings
from savings.exceptions import ExternalRateUnavailable, RateSourceError
from savings.logging import get_logger
from savings.market_data.rate_source import BcbRateSource, annual_to_daily_rate
from savings.models import RateSnapshot
from savings.money import HUNDRED, round6

logger = get_logger(__name__)

STALE_WARNING = "Using cached CDI rate: BCB temporarily unavailable"
FALLBACK_WARNING = "Using CDI_ANNUAL_FALLBACK_RATE: BCB unavailable"


class RateCache:
    """Single-flight, TTL-bounded cache in front of a BcbRateSource.

    Construct once at startup and inject wherever a rate is needed.
    ``resolve_rate`` and ``invalidate`` are the only mutators.

    Args:
        source: Performs the actual external fetch.
        ttl_seconds: Lifetime of a successful snapshot.
        fallback_annual_rate: Constant annual percentage used when the
            source fails and no snapshot exists. None disables it.
        clock: Returns the current Unix time; injectable for tests.
    """

    def __init__(
        self,
        source: BcbRateSource,
        ttl_seconds: float,
        fallback_annual_rate: Decimal | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._source = source
        self._ttl = ttl_seconds
        self._fallback_annual_rate = fallback_annual_rate
        self._clock = clock
        self._snapshot: RateSnapshot | None = None
        self._inflight: asyncio.Task[RateSnapshot] | None = None

    @classmethod
    def from_settings(cls, source: BcbRateSource, settings: CdiSettings) -> "RateCache":
        return cls(
            source=source,
            ttl_seconds=settings.cache_ttl_seconds,
            fallback_annual_rate=settings.annual_fallback_rate,
        )

    @property
    def snapshot(self) -> RateSnapshot | None:
        """Last successfully fetched snapshot, expired or not."""
        return self._snapshot

    def _read_fresh(self) -> RateSnapshot | None:
        snapshot = self._snapshot
        if snapshot is None or snapshot.expires_at is None:
            return None
        if snapshot.expires_at <= self._clock():
            return None
        return snapshot

    async def resolve_rate(
        self, force_refresh: bool = False, allow_stale: bool = True
    ) -> RateSnapshot:
        """Return the current benchmark rate snapshot.

        Args:
            force_refresh: Skip the fresh-cache short-circuit. Still joins an
                in-flight fetch and still applies the failure fallbacks.
            allow_stale: Permit returning an expired snapshot on failure.

        Raises:
            ExternalRateUnavailable: Fetch failed and neither a stale
                snapshot nor a configured fallback rate is usable.
        """
        if not force_refresh:
            fresh = self._read_fresh()
            if fresh is not None:
                return replace(fresh, from_cache=True)

        try:
            # Shielded: a cancelled caller must not cancel the shared fetch
            return await asyncio.shield(self._shared_fetch())
        except RateSourceError as exc:
            return self._fallback(exc, allow_stale)

    def invalidate(self) -> None:
        """Expire the current snapshot so the next call fetches.

        The snapshot itself is kept as the stale fallback.
        """
        if self._snapshot is not None:
            self._snapshot = replace(self._snapshot, expires_at=self._clock())
            logger.info("cdi_rate_cache_invalidated")

    def _shared_fetch(self) -> "asyncio.Task[RateSnapshot]":
        if self._inflight is None:
            task = asyncio.create_task(self._fetch_and_store())
            task.add_done_callback(self._clear_inflight)
            self._inflight = task
        return self._inflight

    def _clear_inflight(self, task: "asyncio.Task[RateSnapshot]") -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled():
            # Mark the exception retrieved; every awaiting caller handles it
            task.exception()

    async def _fetch_and_store(self) -> RateSnapshot:
        fetched = await self._source.fetch_latest()
        now = self._clock()
        snapshot = replace(
            fetched,
            fetched_at=now,
            expires_at=now + self._ttl,
            stale=False,
            fallback=False,
            from_cache=False,
            warning=None,
        )
        self._snapshot = snapshot
        return snapshot

    def _fallback(self, exc: RateSourceError, allow_stale: bool) -> RateSnapshot:
        if allow_stale and self._snapshot is not None:
            logger.warning(
                "cdi_rate_stale_used",
                error=str(exc),
                reference_date=self._snapshot.reference_date,
                annual_rate_percent=str(self._snapshot.annual_rate_percent),
            )
            return replace(self._snapshot, from_cache=True, stale=True, warning=STALE_WARNING)

        if self._fallback_annual_rate is not None:
            annual = round6(self._fallback_annual_rate)
            logger.warning(
                "cdi_rate_fallback_used",
                error=str(exc),
                annual_rate_percent=str(annual),
            )
            return RateSnapshot(
                daily_rate_percent=round6(annual_to_daily_rate(annual) * HUNDRED),
                annual_rate_percent=annual,
                reference_date=None,
                fetched_at=self._clock(),
                expires_at=None,
                provider="fallback_env",
                series_code=self._source.series_code,
                stale=True,
                fallback=True,
                warning=FALLBACK_WARNING,
            )

        logger.error("cdi_rate_unavailable", error=str(exc))
        raise ExternalRateUnavailable(f"CDI rate unavailable: {exc}") from exc
