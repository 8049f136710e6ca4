"""Tests for legacy box document normalization and Decimal parsing."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from savings.models import (
    Box,
    InvestmentType,
    RateSnapshot,
    box_from_document,
    box_to_document,
    normalize_box_document,
    parse_datetime,
)
from savings.money import round2, to_decimal


class TestToDecimal:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("10.65", Decimal("10.65")),
            ("10,65", Decimal("10.65")),
            (" 7 ", Decimal("7")),
            (3, Decimal("3")),
            (Decimal("1.5"), Decimal("1.5")),
        ],
    )
    def test_parses(self, raw: object, expected: Decimal) -> None:
        assert to_decimal(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "abc", "NaN", "Infinity", True])
    def test_returns_default(self, raw: object) -> None:
        assert to_decimal(raw, Decimal("0")) == Decimal("0")

    def test_round2_is_half_up(self) -> None:
        assert round2(Decimal("3.825")) == Decimal("3.83")
        assert round2(Decimal("0.005")) == Decimal("0.01")


class TestNormalizeBoxDocument:
    @pytest.mark.parametrize(
        "raw_type,expected",
        [
            ("cdb_cdi", InvestmentType.CDB_CDI),
            ("CDB_CDI", InvestmentType.CDB_CDI),
            ("cdb-cdi", InvestmentType.CDB_CDI),
            ("cdbcdi", InvestmentType.CDB_CDI),
            ("cdb", InvestmentType.CDB_CDI),
            ("cdi", InvestmentType.CDB_CDI),
            ("none", InvestmentType.NONE),
            ("poupanca", InvestmentType.NONE),
            ("", InvestmentType.NONE),
            ("crypto", InvestmentType.NONE),
        ],
    )
    def test_type_spellings(self, raw_type: str, expected: InvestmentType) -> None:
        doc = normalize_box_document({"id": "b", "investmentType": raw_type, "cdiPercentage": 100})
        assert doc["investmentType"] == expected.value

    def test_missing_type_inferred_from_percentage(self) -> None:
        assert normalize_box_document({"id": "b", "percentCdi": 100})["investmentType"] == "cdb_cdi"
        assert normalize_box_document({"id": "b"})["investmentType"] == "none"

    @pytest.mark.parametrize("key", ["cdiPercentage", "cdiPercent", "percentCdi", "yieldPercentage"])
    def test_percentage_keys(self, key: str) -> None:
        doc = normalize_box_document({"id": "b", "investmentType": "cdb", key: "110"})
        assert doc["cdiPercentage"] == Decimal("110")
        assert key == "cdiPercentage" or key not in doc

    @pytest.mark.parametrize("key", ["cdiAnnualRate", "cdiRate", "annualRate"])
    def test_annual_rate_keys(self, key: str) -> None:
        doc = normalize_box_document({"id": "b", key: "10.65"})
        assert doc["cdiAnnualRate"] == Decimal("10.65")

    def test_principal_defaults_to_current_value(self) -> None:
        doc = normalize_box_document({"id": "b", "currentValue": "250.5", "createdAt": "2025-01-01T00:00:00Z"})
        assert doc["principalValue"] == Decimal("250.50")
        assert doc["firstContributionAt"] == "2025-01-01T00:00:00Z"

    def test_empty_box_has_no_holding_period(self) -> None:
        doc = normalize_box_document({"id": "b", "createdAt": "2025-01-01T00:00:00Z"})
        assert doc.get("firstContributionAt") is None

    def test_negative_values_clamped(self) -> None:
        doc = normalize_box_document({"id": "b", "currentValue": "-3", "cdiPercentage": "-10"})
        assert doc["currentValue"] == Decimal("0")
        assert doc["cdiPercentage"] == Decimal("0")

    def test_input_is_not_mutated(self) -> None:
        original = {"id": "b", "investmentType": "CDI", "cdiPercent": 100}
        normalize_box_document(original)
        assert original == {"id": "b", "investmentType": "CDI", "cdiPercent": 100}


class TestDocuments:
    def test_box_round_trip(self) -> None:
        created = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
        box = Box(
            id="b",
            family_id="f",
            name="Trip",
            current_value=Decimal("10.50"),
            principal_value=Decimal("10.00"),
            investment_type=InvestmentType.CDB_CDI,
            auto_cdi=True,
            cdi_annual_rate=Decimal("10.65"),
            cdi_percentage=Decimal("100"),
            first_contribution_at=created,
            last_yield_applied_at=created,
            created_at=created,
            version=4,
        )
        assert box_from_document(box_to_document(box)) == box

    def test_parse_datetime_assumes_utc(self) -> None:
        parsed = parse_datetime("2026-10-19T12:00:00")
        assert parsed == datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        assert parse_datetime(None) is None


class TestRateSnapshot:
    def test_to_dict_uses_camel_case(self) -> None:
        snapshot = RateSnapshot(
            daily_rate_percent=Decimal("0.040168"),
            annual_rate_percent=Decimal("10.65"),
            reference_date="16/10/2026",
            fetched_at=0.0,
            expires_at=None,
        )
        data = snapshot.to_dict()
        assert data["annualRatePercent"] == "10.65"
        assert data["fetchedAt"] == "1970-01-01T00:00:00+00:00"
        assert data["expiresAt"] is None
        assert data["seriesCode"] == "12"
        assert data["fromCache"] is False
