"""Box lifecycle orchestration: accrue-on-read, movements, configuration.

Every operation follows the same cycle under a per-box asyncio.Lock:
1. Load the box (scoped to the family)
2. Accrue yield up to ``now`` via YieldEngine
3. Apply the mutation, if any
4. Save the box and its new ledger entries as one unit (optimistic
   version check)
5. Project taxes and build the BoxView

Validation always happens before step 3, and nothing is written unless
step 4 is reached, so a rejected request leaves stored state untouched.
"""

import asyncio
import uuid
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal, InvalidOperation

from savings.boxes.schemas import BoxCreate, BoxUpdate, Movement
from savings.boxes.view import BoxView, build_view
from savings.exceptions import (
    BoxNotFound,
    InsufficientBalance,
    InvalidInput,
    InvalidInvestmentConfig,
)
from savings.logging import get_logger
from savings.market_data.rate_cache import RateCache
from savings.models import (
    Box,
    BoxTransaction,
    InvestmentType,
    MovementType,
    RateSnapshot,
    parse_datetime,
    utcnow,
)
from savings.money import MAX_AMOUNT, ZERO, round2, round6, to_decimal
from savings.storage.repository import BoxRepository
from savings.tax.engine import TaxEngine, TaxProjection, holding_days
from savings.yields.engine import YieldEngine, effective_daily_rate

logger = get_logger(__name__)


def validate_investment(
    investment_type: str,
    cdi_percentage: object,
    cdi_annual_rate: object,
    auto_cdi: bool,
) -> tuple[InvestmentType, Decimal, Decimal, bool]:
    """Check an investment configuration and return it normalized.

    Returns:
        (investment_type, cdi_percentage, cdi_annual_rate, auto_cdi)

    Raises:
        InvalidInvestmentConfig: Unknown type, non-positive percentage, or a
            missing/non-positive benchmark rate with auto mode off.
    """
    try:
        kind = InvestmentType(str(investment_type).strip().lower())
    except ValueError:
        raise InvalidInvestmentConfig(f"Unknown investment type: {investment_type!r}") from None

    if kind is InvestmentType.NONE:
        return kind, ZERO, ZERO, False

    percentage = to_decimal(cdi_percentage)
    if percentage is None or percentage <= 0:
        raise InvalidInvestmentConfig("cdiPercentage must be greater than zero")

    annual = to_decimal(cdi_annual_rate, ZERO)
    if annual < 0:
        raise InvalidInvestmentConfig("cdiAnnualRate cannot be negative")
    if not auto_cdi and annual <= 0:
        raise InvalidInvestmentConfig("cdiAnnualRate is required when autoCdi is off")

    try:
        return kind, round6(percentage), round6(annual), auto_cdi
    except InvalidOperation:
        raise InvalidInvestmentConfig("cdiPercentage or cdiAnnualRate is out of range") from None


def parse_movement(movement: Movement) -> tuple[MovementType, Decimal]:
    """Validate a movement request.

    Raises:
        InvalidInput: Non-numeric or non-positive value, or a type other
            than "in" / "out".
    """
    value = to_decimal(movement.value)
    if value is None or value <= 0:
        raise InvalidInput("value must be a positive number")
    if value > MAX_AMOUNT:
        raise InvalidInput(f"value cannot exceed {MAX_AMOUNT}")
    value = round2(value)
    if value <= 0:
        raise InvalidInput("value must be at least 0.01")

    if movement.type not in (MovementType.IN.value, MovementType.OUT.value):
        raise InvalidInput(f"Unknown movement type: {movement.type!r}")

    return MovementType(movement.type), value


def deposit(box: Box, value: Decimal, now: datetime) -> BoxTransaction:
    """Add ``value`` to both the balance and the cost basis."""
    box.current_value = round2(box.current_value + value)
    box.principal_value = round2(box.principal_value + value)
    if box.first_contribution_at is None:
        box.first_contribution_at = now
    return BoxTransaction(
        box_id=box.id,
        family_id=box.family_id,
        type=MovementType.IN,
        value=value,
        gross_value=value,
        net_value=value,
        date=now,
    )


def withdraw(box: Box, value: Decimal, tax: TaxProjection, now: datetime) -> BoxTransaction:
    """Remove ``value`` from the balance, shrinking the cost basis pro rata.

    ``tax`` is the projection for the withdrawn amount; it is recorded on
    the ledger entry.

    Raises:
        InsufficientBalance: ``value`` exceeds the current balance.
    """
    balance = box.current_value
    if value > balance:
        raise InsufficientBalance(
            f"Withdrawal of {value} exceeds current balance of {balance}"
        )

    remaining = round2(balance - value)
    if remaining <= 0:
        box.current_value = ZERO
        box.principal_value = ZERO
        # Emptied: the next deposit starts a new holding period
        box.first_contribution_at = None
    else:
        box.principal_value = max(ZERO, round2(box.principal_value * remaining / balance))
        box.current_value = remaining

    return BoxTransaction(
        box_id=box.id,
        family_id=box.family_id,
        type=MovementType.OUT,
        value=value,
        gross_value=value,
        net_value=tax.net_current_value,
        ir_rate=tax.ir_rate,
        ir_tax=tax.ir_tax,
        iof_tax=tax.iof_tax,
        date=now,
    )


class BoxService:
    """Orchestrates accrual, tax projection and state transitions for boxes.

    Args:
        repository: Box and ledger store.
        yield_engine: Accrues compound yield.
        tax_engine: Projects IOF/IR withholding.
        rate_cache: Shared benchmark rate cache (market rate endpoint).
        clock: Returns the current aware datetime; injectable for tests.
    """

    def __init__(
        self,
        repository: BoxRepository,
        yield_engine: YieldEngine,
        tax_engine: TaxEngine,
        rate_cache: RateCache,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._yield_engine = yield_engine
        self._tax_engine = tax_engine
        self._rate_cache = rate_cache
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, box_id: str) -> asyncio.Lock:
        return self._locks.setdefault(box_id, asyncio.Lock())

    async def _load(self, family_id: str, box_id: str) -> Box:
        box = await self._repository.find_box(box_id)
        if box is None or box.family_id != family_id:
            raise BoxNotFound(f"Box {box_id} not found")
        return box

    async def _persist(self, box: Box, entries: list[BoxTransaction | None]) -> None:
        await self._repository.save_box_with_entries(
            box, [entry for entry in entries if entry is not None]
        )

    def project(self, box: Box, now: datetime) -> TaxProjection:
        """Tax projection for redeeming the whole box at ``now``."""
        if not box.is_invested:
            return self._tax_engine.untaxed(box.current_value, box.principal_value)
        return self._tax_engine.project(
            box.current_value,
            box.principal_value,
            holding_days(box.first_contribution_at, now),
        )

    def render(self, box: Box, now: datetime) -> BoxView:
        """Build the view of an already accrued box."""
        daily = ZERO
        if box.is_invested:
            daily = effective_daily_rate(box.cdi_annual_rate, box.cdi_percentage)
        return build_view(box, self.project(box, now), daily)

    # ──────────────────────────────────────────────
    # Reads
    # ──────────────────────────────────────────────

    async def _load_accrued(self, family_id: str, box_id: str, now: datetime) -> Box:
        """Load a box and persist its accrual up to ``now``. Caller holds the box lock."""
        box = await self._load(family_id, box_id)
        accrual = await self._yield_engine.accrue(box, now)
        await self._persist(box, [accrual.entry])
        return box

    async def get_box(self, family_id: str, box_id: str, now: datetime | None = None) -> BoxView:
        """Accrue a box up to now and return its view."""
        now = now or self._clock()
        async with self._lock_for(box_id):
            box = await self._load_accrued(family_id, box_id, now)
            return self.render(box, now)

    async def list_boxes(self, family_id: str, now: datetime | None = None) -> list[BoxView]:
        """Accrue and return every box of a family.

        Boxes deleted after the listing query are left out.
        """
        now = now or self._clock()
        views = []
        for box in await self._repository.list_boxes(family_id):
            try:
                views.append(await self.get_box(family_id, box.id, now))
            except BoxNotFound:
                self._locks.pop(box.id, None)
                logger.debug("box_vanished_during_listing", box_id=box.id)
        return views

    async def ledger(
        self, family_id: str, box_id: str, now: datetime | None = None
    ) -> list[BoxTransaction]:
        """Accrue a box up to now and return its ledger in insertion order."""
        now = now or self._clock()
        async with self._lock_for(box_id):
            await self._load_accrued(family_id, box_id, now)
            return await self._repository.list_ledger_entries(box_id)

    async def market_rate(self, force_refresh: bool = False) -> RateSnapshot:
        return await self._rate_cache.resolve_rate(force_refresh=force_refresh)

    # ──────────────────────────────────────────────
    # Mutations
    # ──────────────────────────────────────────────

    async def create_box(
        self, family_id: str, payload: BoxCreate, now: datetime | None = None
    ) -> BoxView:
        """Create a box, optionally funded and back-dated.

        A back-dated ``applicationDate`` starts both the holding period and
        the accrual clock, so the missed business days accrue immediately.
        """
        now = now or self._clock()
        name = payload.name.strip()
        if not name:
            raise InvalidInput("name is required")

        kind, percentage, annual, auto = validate_investment(
            payload.investment_type,
            payload.cdi_percentage,
            payload.cdi_annual_rate,
            payload.auto_cdi,
        )

        initial = ZERO
        if payload.initial_value not in (None, ""):
            parsed = to_decimal(payload.initial_value)
            if parsed is None or parsed < 0:
                raise InvalidInput("initialValue must be a non-negative number")
            if parsed > MAX_AMOUNT:
                raise InvalidInput(f"initialValue cannot exceed {MAX_AMOUNT}")
            initial = round2(parsed)

        applied_at = self._parse_application_date(payload.application_date, now)

        box = Box(
            id=uuid.uuid4().hex,
            family_id=family_id,
            name=name,
            is_emergency=payload.is_emergency,
            investment_type=kind,
            auto_cdi=auto,
            cdi_annual_rate=annual,
            cdi_percentage=percentage,
            last_yield_applied_at=applied_at,
            created_at=now,
        )

        if box.auto_cdi:
            await self._yield_engine.resolve_annual_rate(box)

        entries: list[BoxTransaction | None] = []
        if initial > 0:
            entries.append(deposit(box, initial, applied_at))

        accrual = await self._yield_engine.accrue(box, now)
        entries.append(accrual.entry)

        await self._persist(box, entries)
        logger.info(
            "box_created",
            box_id=box.id,
            family_id=family_id,
            investment_type=box.investment_type.value,
            initial_value=str(initial),
        )
        return self.render(box, now)

    @staticmethod
    def _parse_application_date(raw: object, now: datetime) -> datetime:
        if raw in (None, ""):
            return now
        try:
            applied_at = parse_datetime(raw)
        except (TypeError, ValueError):
            raise InvalidInput(f"Invalid applicationDate: {raw!r}") from None
        assert applied_at is not None
        if applied_at > now:
            raise InvalidInput("applicationDate cannot be in the future")
        return applied_at

    async def update_box(
        self, family_id: str, box_id: str, payload: BoxUpdate, now: datetime | None = None
    ) -> BoxView:
        """Change name, emergency flag or investment configuration.

        The box is accrued under its old configuration first.
        """
        now = now or self._clock()
        async with self._lock_for(box_id):
            box = await self._load(family_id, box_id)

            name = box.name if payload.name is None else payload.name.strip()
            if not name:
                raise InvalidInput("name cannot be empty")

            kind, percentage, annual, auto = validate_investment(
                payload.investment_type if payload.investment_type is not None else box.investment_type.value,
                payload.cdi_percentage if payload.cdi_percentage is not None else box.cdi_percentage,
                payload.cdi_annual_rate if payload.cdi_annual_rate is not None else box.cdi_annual_rate,
                payload.auto_cdi if payload.auto_cdi is not None else box.auto_cdi,
            )

            accrual = await self._yield_engine.accrue(box, now)

            was_invested = box.is_invested
            box.name = name
            if payload.is_emergency is not None:
                box.is_emergency = payload.is_emergency
            box.investment_type = kind
            box.cdi_percentage = percentage
            box.cdi_annual_rate = annual
            box.auto_cdi = auto

            if box.is_invested and not was_invested:
                # Yield starts now; nothing accrues retroactively
                box.last_yield_applied_at = now
            if box.auto_cdi:
                await self._yield_engine.resolve_annual_rate(box)

            await self._persist(box, [accrual.entry])
            logger.info(
                "box_updated",
                box_id=box.id,
                investment_type=box.investment_type.value,
                cdi_percentage=str(box.cdi_percentage),
                auto_cdi=box.auto_cdi,
            )
            return self.render(box, now)

    async def move(
        self, family_id: str, box_id: str, movement: Movement, now: datetime | None = None
    ) -> BoxView:
        """Deposit into or withdraw from a box after accruing it."""
        now = now or self._clock()
        kind, value = parse_movement(movement)

        async with self._lock_for(box_id):
            box = await self._load(family_id, box_id)
            accrual = await self._yield_engine.accrue(box, now)

            if kind is MovementType.IN:
                entry = deposit(box, value, now)
                logger.info("box_deposit", box_id=box.id, value=str(value))
            else:
                tax = self._withdrawal_tax(box, value, now)
                entry = withdraw(box, value, tax, now)
                logger.info(
                    "box_withdrawal",
                    box_id=box.id,
                    value=str(value),
                    net_value=str(tax.net_current_value),
                    total_tax=str(tax.total_tax),
                )

            await self._persist(box, [accrual.entry, entry])
            return self.render(box, now)

    def _withdrawal_tax(self, box: Box, value: Decimal, now: datetime) -> TaxProjection:
        """Project taxes on the withdrawn share of the balance."""
        if not box.is_invested or box.current_value <= 0:
            return self._tax_engine.untaxed(value, value)
        share = min(value, box.current_value) / box.current_value
        principal_share = round2(box.principal_value * share)
        return self._tax_engine.project(
            value, principal_share, holding_days(box.first_contribution_at, now)
        )

    async def delete_box(self, family_id: str, box_id: str) -> None:
        """Delete a box and its whole ledger."""
        async with self._lock_for(box_id):
            await self._load(family_id, box_id)
            removed = await self._repository.delete_ledger_entries_for_box(box_id)
            await self._repository.delete_box(box_id)
        self._locks.pop(box_id, None)
        logger.info("box_deleted", box_id=box_id, ledger_entries_removed=removed)
