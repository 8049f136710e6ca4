"""Tests for the HTTP layer: routing, family scoping and error mapping."""

from collections.abc import Iterator
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from savings.api.app import create_app, status_for
from savings.boxes.service import BoxService
from savings.exceptions import (
    BoxNotFound,
    ConcurrentModification,
    ExternalRateUnavailable,
    InsufficientBalance,
    SavingsError,
)

FAMILY = {"X-Family-Id": "family-1"}


@pytest.fixture
def client(service: BoxService) -> Iterator[TestClient]:
    app = create_app()
    app.state.box_service = service
    with TestClient(app) as test_client:
        yield test_client


def _create(client: TestClient, **payload: object) -> dict:
    body = {"name": "Trip", **payload}
    response = client.post("/boxes", json=body, headers=FAMILY)
    assert response.status_code == 201, response.text
    return response.json()


class TestBoxRoutes:
    def test_create_and_get(self, client: TestClient) -> None:
        created = _create(
            client,
            investmentType="cdb_cdi",
            cdiPercentage=100,
            cdiAnnualRate=10,
            initialValue="1000",
            applicationDate="2026-10-16T12:00:00Z",
        )

        assert created["currentValue"] == "1000.38"
        assert created["netCurrentValue"] == "1000.04"
        assert created["taxes"]["iofTax"] == "0.33"
        assert created["label"] == "CDB 100% of CDI"

        response = client.get(f"/boxes/{created['id']}", headers=FAMILY)
        assert response.status_code == 200
        assert response.json()["currentValue"] == "1000.38"

    def test_list(self, client: TestClient) -> None:
        _create(client, name="A")
        _create(client, name="B")

        response = client.get("/boxes", headers=FAMILY)

        assert response.status_code == 200
        assert sorted(b["name"] for b in response.json()) == ["A", "B"]

    def test_family_header_required(self, client: TestClient) -> None:
        assert client.get("/boxes").status_code == 422

    def test_other_family_gets_404(self, client: TestClient) -> None:
        created = _create(client)
        response = client.get(f"/boxes/{created['id']}", headers={"X-Family-Id": "family-2"})
        assert response.status_code == 404
        assert response.json()["type"] == "BoxNotFound"

    def test_move_and_transactions(self, client: TestClient) -> None:
        created = _create(client, initialValue="100")

        response = client.post(
            f"/boxes/{created['id']}/move", json={"value": "40", "type": "out"}, headers=FAMILY
        )
        assert response.status_code == 200
        assert response.json()["currentValue"] == "60.00"

        response = client.get(f"/boxes/{created['id']}/transactions", headers=FAMILY)
        assert [e["type"] for e in response.json()] == ["in", "out"]

    def test_overdraw_is_400(self, client: TestClient) -> None:
        created = _create(client, initialValue="100")

        response = client.post(
            f"/boxes/{created['id']}/move", json={"value": "100.01", "type": "out"}, headers=FAMILY
        )

        assert response.status_code == 400
        assert response.json()["type"] == "InsufficientBalance"

    def test_invalid_config_is_400(self, client: TestClient) -> None:
        response = client.post(
            "/boxes", json={"name": "X", "investmentType": "cdb_cdi", "cdiPercentage": 0}, headers=FAMILY
        )
        assert response.status_code == 400
        assert response.json()["type"] == "InvalidInvestmentConfig"

    def test_update(self, client: TestClient) -> None:
        created = _create(client)

        response = client.put(
            f"/boxes/{created['id']}", json={"name": "Renamed", "isEmergency": True}, headers=FAMILY
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        assert response.json()["isEmergency"] is True

    def test_delete(self, client: TestClient) -> None:
        created = _create(client)

        assert client.delete(f"/boxes/{created['id']}", headers=FAMILY).status_code == 204
        assert client.get(f"/boxes/{created['id']}", headers=FAMILY).status_code == 404


class TestMarketRoute:
    def test_current_rate(self, client: TestClient, rate_cache: AsyncMock) -> None:
        response = client.get("/boxes/market/cdi")

        assert response.status_code == 200
        assert response.json()["annualRatePercent"] == "10.65"
        rate_cache.resolve_rate.assert_awaited_once_with(force_refresh=False)

    def test_refresh(self, client: TestClient, rate_cache: AsyncMock) -> None:
        client.get("/boxes/market/cdi", params={"refresh": "true"})
        rate_cache.resolve_rate.assert_awaited_once_with(force_refresh=True)

    def test_unavailable_is_503(self, client: TestClient, rate_cache: AsyncMock) -> None:
        rate_cache.resolve_rate.side_effect = ExternalRateUnavailable("CDI rate unavailable: BCB HTTP 500")

        response = client.get("/boxes/market/cdi")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "30"
        assert response.json()["error"] == "CDI rate unavailable: BCB HTTP 500"


class TestStatusFor:
    @pytest.mark.parametrize(
        "exc,status",
        [
            (BoxNotFound("x"), 404),
            (ConcurrentModification("x"), 409),
            (ExternalRateUnavailable("x"), 503),
            (InsufficientBalance("x"), 400),
            (SavingsError("x"), 400),
        ],
    )
    def test_mapping(self, exc: SavingsError, status: int) -> None:
        assert status_for(exc) == status
