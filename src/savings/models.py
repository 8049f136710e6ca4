"""Shared data models for the savings box engine.

CRITICAL: All monetary values use Decimal. Never use float for balances,
rates or taxes.

Boxes and ledger entries cross the storage boundary as plain documents
(dicts with camelCase keys, the shape the document store has always used).
``box_from_document`` is the only way a stored document becomes a ``Box``,
and it runs ``normalize_box_document`` exactly once on the way in.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from savings.money import ZERO, round2, round6, to_decimal


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InvestmentType(str, Enum):
    """How a box's balance grows."""

    NONE = "none"
    CDB_CDI = "cdb_cdi"


class MovementType(str, Enum):
    """Ledger entry kind."""

    IN = "in"
    OUT = "out"
    YIELD = "yield"


@dataclass
class Box:
    """A savings box (one per family per savings goal)."""

    id: str
    family_id: str
    name: str
    current_value: Decimal = ZERO
    principal_value: Decimal = ZERO
    is_emergency: bool = False
    investment_type: InvestmentType = InvestmentType.NONE
    auto_cdi: bool = False
    cdi_annual_rate: Decimal = ZERO  # percentage, e.g. 10.65
    cdi_percentage: Decimal = ZERO  # percentage of the benchmark, e.g. 100
    first_contribution_at: datetime | None = None
    last_yield_applied_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    version: int = 0

    @property
    def is_invested(self) -> bool:
        return self.investment_type is InvestmentType.CDB_CDI


@dataclass
class BoxTransaction:
    """Append-only ledger entry for a box movement or accrual."""

    box_id: str
    family_id: str
    type: MovementType
    value: Decimal
    date: datetime
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    gross_value: Decimal | None = None
    net_value: Decimal | None = None
    ir_rate: Decimal | None = None
    ir_tax: Decimal | None = None
    iof_tax: Decimal | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class RateSnapshot:
    """Benchmark rate as last resolved by the rate cache.

    ``fetched_at`` and ``expires_at`` are Unix timestamps (seconds).
    """

    daily_rate_percent: Decimal
    annual_rate_percent: Decimal
    reference_date: str | None
    fetched_at: float
    expires_at: float | None
    provider: str = "bcb_sgs"
    series_code: str = "12"
    stale: bool = False
    fallback: bool = False
    from_cache: bool = False
    warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "seriesCode": self.series_code,
            "referenceDate": self.reference_date,
            "dailyRatePercent": str(self.daily_rate_percent),
            "annualRatePercent": str(self.annual_rate_percent),
            "fetchedAt": _timestamp_to_iso(self.fetched_at),
            "expiresAt": _timestamp_to_iso(self.expires_at),
            "stale": self.stale,
            "fallback": self.fallback,
            "fromCache": self.from_cache,
            "warning": self.warning,
        }


def _timestamp_to_iso(value: float | None) -> str | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


# ──────────────────────────────────────────────
# Legacy normalization
# ──────────────────────────────────────────────

_LEGACY_INVESTMENT_TYPES = {
    "cdb_cdi": InvestmentType.CDB_CDI,
    "cdb-cdi": InvestmentType.CDB_CDI,
    "cdbcdi": InvestmentType.CDB_CDI,
    "cdb": InvestmentType.CDB_CDI,
    "cdi": InvestmentType.CDB_CDI,
    "none": InvestmentType.NONE,
    "poupanca": InvestmentType.NONE,
    "": InvestmentType.NONE,
}

_LEGACY_PERCENTAGE_KEYS = ("cdiPercentage", "cdiPercent", "percentCdi", "yieldPercentage")
_LEGACY_ANNUAL_RATE_KEYS = ("cdiAnnualRate", "cdiRate", "annualRate")


def _first_present(doc: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if doc.get(key) is not None:
            return doc[key]
    return None


def normalize_box_document(doc: dict[str, Any]) -> dict[str, Any]:
    """Map older box document spellings onto the current two-value model.

    Pure: returns a new dict and leaves ``doc`` untouched. Handles
    - investment type spellings (cdi, cdb, cdb-cdi, CDB_CDI, poupanca, null)
    - percentage field names (cdiPercent, percentCdi, yieldPercentage)
    - annual rate field names (cdiRate, annualRate)
    - documents written before principalValue or firstContributionAt existed
    """
    normalized = {k: v for k, v in doc.items() if k not in _LEGACY_PERCENTAGE_KEYS + _LEGACY_ANNUAL_RATE_KEYS}

    percentage = to_decimal(_first_present(doc, _LEGACY_PERCENTAGE_KEYS), ZERO)
    annual_rate = to_decimal(_first_present(doc, _LEGACY_ANNUAL_RATE_KEYS), ZERO)

    raw_type = doc.get("investmentType")
    if raw_type is None:
        investment_type = InvestmentType.CDB_CDI if percentage > 0 else InvestmentType.NONE
    else:
        key = str(raw_type).strip().lower()
        investment_type = _LEGACY_INVESTMENT_TYPES.get(key, InvestmentType.NONE)

    current_value = to_decimal(doc.get("currentValue"), ZERO)
    principal_value = to_decimal(doc.get("principalValue"), None)
    if principal_value is None:
        principal_value = current_value

    # Funded boxes from before the holding period was tracked start at creation
    if doc.get("firstContributionAt") is None and principal_value > 0:
        normalized["firstContributionAt"] = doc.get("createdAt")

    normalized["investmentType"] = investment_type.value
    normalized["cdiPercentage"] = max(percentage, ZERO)
    normalized["cdiAnnualRate"] = max(annual_rate, ZERO)
    normalized["currentValue"] = max(round2(current_value), ZERO)
    normalized["principalValue"] = max(round2(principal_value), ZERO)
    normalized["autoCdi"] = bool(doc.get("autoCdi", False))
    normalized["isEmergency"] = bool(doc.get("isEmergency", False))
    return normalized


def parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def box_from_document(doc: dict[str, Any]) -> Box:
    """Build a Box from a stored document, normalizing legacy fields."""
    data = normalize_box_document(doc)
    return Box(
        id=str(data["id"]),
        family_id=str(data.get("familyId", "")),
        name=str(data.get("name", "")),
        current_value=data["currentValue"],
        principal_value=data["principalValue"],
        is_emergency=data["isEmergency"],
        investment_type=InvestmentType(data["investmentType"]),
        auto_cdi=data["autoCdi"],
        cdi_annual_rate=round6(data["cdiAnnualRate"]),
        cdi_percentage=data["cdiPercentage"],
        first_contribution_at=parse_datetime(data.get("firstContributionAt")),
        last_yield_applied_at=parse_datetime(data.get("lastYieldAppliedAt")),
        created_at=parse_datetime(data.get("createdAt")) or utcnow(),
        version=int(data.get("version", 0)),
    )


def box_to_document(box: Box) -> dict[str, Any]:
    """Serialize a Box into its stored document shape."""
    return {
        "id": box.id,
        "familyId": box.family_id,
        "name": box.name,
        "currentValue": str(box.current_value),
        "principalValue": str(box.principal_value),
        "isEmergency": box.is_emergency,
        "investmentType": box.investment_type.value,
        "autoCdi": box.auto_cdi,
        "cdiAnnualRate": str(box.cdi_annual_rate),
        "cdiPercentage": str(box.cdi_percentage),
        "firstContributionAt": _format_datetime(box.first_contribution_at),
        "lastYieldAppliedAt": _format_datetime(box.last_yield_applied_at),
        "createdAt": _format_datetime(box.created_at),
        "version": box.version,
    }


def _optional_str(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def transaction_to_document(entry: BoxTransaction) -> dict[str, Any]:
    """Serialize a ledger entry into its stored/returned document shape."""
    return {
        "id": entry.id,
        "boxId": entry.box_id,
        "familyId": entry.family_id,
        "type": entry.type.value,
        "value": str(entry.value),
        "grossValue": _optional_str(entry.gross_value),
        "netValue": _optional_str(entry.net_value),
        "irRate": _optional_str(entry.ir_rate),
        "irTax": _optional_str(entry.ir_tax),
        "iofTax": _optional_str(entry.iof_tax),
        "date": _format_datetime(entry.date),
        "createdAt": _format_datetime(entry.created_at),
    }


def transaction_from_document(doc: dict[str, Any]) -> BoxTransaction:
    return BoxTransaction(
        id=str(doc["id"]),
        box_id=str(doc["boxId"]),
        family_id=str(doc.get("familyId", "")),
        type=MovementType(doc["type"]),
        value=to_decimal(doc.get("value"), ZERO),
        date=parse_datetime(doc.get("date")) or utcnow(),
        gross_value=to_decimal(doc.get("grossValue")),
        net_value=to_decimal(doc.get("netValue")),
        ir_rate=to_decimal(doc.get("irRate")),
        ir_tax=to_decimal(doc.get("irTax")),
        iof_tax=to_decimal(doc.get("iofTax")),
        created_at=parse_datetime(doc.get("createdAt")) or utcnow(),
    )
