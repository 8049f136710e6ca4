"""Shared test fixtures for the savings box engine."""

from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock

import pytest

from savings.boxes.service import BoxService
from savings.config import CdiSettings
from savings.market_data.rate_cache import RateCache
from savings.models import Box, InvestmentType, RateSnapshot
from savings.storage.repository import InMemoryBoxRepository
from savings.tax.engine import TaxEngine
from savings.yields.engine import YieldEngine

# Monday. The preceding Friday is 2026-10-16.
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
LAST_FRIDAY = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def last_friday() -> datetime:
    return LAST_FRIDAY


@pytest.fixture
def cdi_settings() -> CdiSettings:
    """CDI settings with test defaults (no fallback rate)."""
    return CdiSettings(
        series_code="12",
        base_url="https://bcb.test/dados/serie",
        request_timeout_ms=7000,
        cache_ttl_minutes=Decimal("180"),
        annual_fallback_rate=None,
    )


@pytest.fixture
def rate_snapshot() -> RateSnapshot:
    """A fresh snapshot at 10.65% a year."""
    return RateSnapshot(
        daily_rate_percent=Decimal("0.040168"),
        annual_rate_percent=Decimal("10.65"),
        reference_date="16/10/2026",
        fetched_at=1_700_000_000.0,
        expires_at=1_700_010_800.0,
    )


@pytest.fixture
def rate_cache(rate_snapshot: RateSnapshot) -> AsyncMock:
    """Mock RateCache that resolves to rate_snapshot."""
    cache = AsyncMock(spec=RateCache)
    cache.resolve_rate = AsyncMock(return_value=rate_snapshot)
    return cache


@pytest.fixture
def yield_engine(rate_cache: AsyncMock) -> YieldEngine:
    return YieldEngine(rate_cache)


@pytest.fixture
def tax_engine() -> TaxEngine:
    return TaxEngine()


@pytest.fixture
def repository() -> InMemoryBoxRepository:
    return InMemoryBoxRepository()


@pytest.fixture
def service(
    repository: InMemoryBoxRepository,
    yield_engine: YieldEngine,
    tax_engine: TaxEngine,
    rate_cache: AsyncMock,
    now: datetime,
) -> BoxService:
    """BoxService over an in-memory store with a fixed clock."""
    return BoxService(repository, yield_engine, tax_engine, rate_cache, clock=lambda: now)


@pytest.fixture
def make_box() -> Callable[..., Box]:
    """Factory for boxes with sensible defaults (CDB at 100% of a 10% CDI)."""

    def _make(**overrides: Any) -> Box:
        defaults: dict[str, Any] = dict(
            id="box-1",
            family_id="family-1",
            name="Vacation",
            current_value=Decimal("1000.00"),
            principal_value=Decimal("1000.00"),
            investment_type=InvestmentType.CDB_CDI,
            cdi_annual_rate=Decimal("10"),
            cdi_percentage=Decimal("100"),
            first_contribution_at=LAST_FRIDAY,
            last_yield_applied_at=LAST_FRIDAY,
            created_at=LAST_FRIDAY,
        )
        defaults.update(overrides)
        return Box(**defaults)

    return _make
