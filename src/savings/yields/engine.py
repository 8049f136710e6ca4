"""Compound yield accrual for CDI-indexed boxes.

Accrual compounds the box's effective daily rate over the business days
elapsed since the last accrual:

    effective_annual = cdi_annual_rate * cdi_percentage / 100
    daily            = (1 + effective_annual / 100) ** (1 / 252) - 1
    growth           = (1 + daily) ** business_days - 1
    yield            = round2(current_value * growth)

Business days are Mon-Fri at calendar-day granularity (UTC), counted
exclusive of the start date and inclusive of the end date. Holidays are
not modelled.

Accrual must run before every read and every balance-affecting mutation
so stored state is current as of ``now`` before anything else happens.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from decimal import Decimal

from savings.exceptions import ExternalRateUnavailable
from savings.logging import get_logger
from savings.market_data.rate_cache import RateCache
from savings.market_data.rate_source import annual_to_daily_rate
from savings.models import Box, BoxTransaction, MovementType
from savings.money import HUNDRED, ONE, ZERO, round2, round6

logger = get_logger(__name__)


def _utc_date(moment: datetime) -> date:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).date()


def business_days_between(start: datetime, end: datetime) -> int:
    """Count Mon-Fri days in (start, end], by calendar date.

    Friday -> following Monday is 1. Returns 0 when end is not after start.
    """
    first = _utc_date(start) + timedelta(days=1)
    last = _utc_date(end)
    if last < first:
        return 0

    total_days = (last - first).days + 1
    full_weeks, remainder = divmod(total_days, 7)
    count = full_weeks * 5
    for offset in range(remainder):
        if (first + timedelta(days=full_weeks * 7 + offset)).weekday() < 5:
            count += 1
    return count


def effective_daily_rate(cdi_annual_rate: Decimal, cdi_percentage: Decimal) -> Decimal:
    """Daily rate fraction for a box contracted at ``cdi_percentage`` of the CDI."""
    if cdi_annual_rate <= 0 or cdi_percentage <= 0:
        return ZERO
    effective_annual = cdi_annual_rate * (cdi_percentage / HUNDRED)
    return annual_to_daily_rate(effective_annual)


@dataclass
class AccrualResult:
    """Outcome of one accrual pass over a box."""

    business_days: int
    daily_rate: Decimal
    yield_value: Decimal
    entry: BoxTransaction | None = None


class YieldEngine:
    """Brings a box's balance up to date by compounding elapsed business days.

    Args:
        rate_cache: Shared benchmark rate cache, used for auto-CDI boxes.
    """

    def __init__(self, rate_cache: RateCache) -> None:
        self._rate_cache = rate_cache

    async def resolve_annual_rate(self, box: Box, strict: bool = False) -> Decimal:
        """Return the benchmark annual rate to use for ``box``.

        Auto-CDI boxes ask the rate cache and remember the resolved rate on
        the box. When that fails and ``strict`` is off, the box's last known
        rate is used instead, provided it has one.

        Raises:
            ExternalRateUnavailable: Auto mode, no rate resolvable, and either
                strict mode or no previously stored rate.
        """
        if not box.auto_cdi:
            return box.cdi_annual_rate

        try:
            snapshot = await self._rate_cache.resolve_rate()
        except ExternalRateUnavailable:
            if strict or box.cdi_annual_rate <= 0:
                raise
            logger.warning(
                "cdi_rate_last_known_used",
                box_id=box.id,
                annual_rate_percent=str(box.cdi_annual_rate),
            )
            return box.cdi_annual_rate

        box.cdi_annual_rate = round6(snapshot.annual_rate_percent)
        return box.cdi_annual_rate

    async def daily_rate_for(self, box: Box, strict: bool = False) -> Decimal:
        """Effective daily rate fraction for ``box`` (0 when not invested)."""
        if not box.is_invested:
            return ZERO
        annual = await self.resolve_annual_rate(box, strict=strict)
        return effective_daily_rate(annual, box.cdi_percentage)

    async def accrue(self, box: Box, now: datetime, strict: bool = False) -> AccrualResult:
        """Compound yield onto ``box`` up to ``now``.

        Mutates the box. Returns the ``yield`` ledger entry to append, if
        growth was strictly positive. Idempotent for a repeated ``now``:
        no business day is ever counted twice.
        """
        if not box.is_invested:
            return AccrualResult(business_days=0, daily_rate=ZERO, yield_value=ZERO)

        daily = await self.daily_rate_for(box, strict=strict)
        start = box.last_yield_applied_at or box.created_at
        days = business_days_between(start, now)

        if days <= 0 or daily <= 0:
            self._advance(box, now)
            return AccrualResult(business_days=max(days, 0), daily_rate=daily, yield_value=ZERO)

        growth = (ONE + daily) ** days - ONE
        yield_value = round2(box.current_value * growth)
        entry = None

        if yield_value > 0:
            box.current_value = round2(box.current_value + yield_value)
            entry = BoxTransaction(
                box_id=box.id,
                family_id=box.family_id,
                type=MovementType.YIELD,
                value=yield_value,
                gross_value=yield_value,
                date=now,
            )
            logger.info(
                "yield_accrued",
                box_id=box.id,
                business_days=days,
                yield_value=str(yield_value),
                current_value=str(box.current_value),
            )

        self._advance(box, now)
        return AccrualResult(business_days=days, daily_rate=daily, yield_value=yield_value, entry=entry)

    @staticmethod
    def _advance(box: Box, now: datetime) -> None:
        if box.last_yield_applied_at is None or now > box.last_yield_applied_at:
            box.last_yield_applied_at = now
