"""Tests for the verifier REST API."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from verifier.api import routes
from verifier.api.app import SERVICE_NAME, app
from verifier.pipeline.records import ConsistencyReport, ProductQuery, Source, VerificationResult


class _FakeService:
    calls: list = []

    async def verify(self, query: ProductQuery, database_ingredients: str | None = None):
        self.calls.append((query, database_ingredients))
        source = Source(
            name="Target",
            url="https://www.target.com/p/soup/-/A-1",
            ingredients_text="Tomato Puree, Water, Salt",
            confidence=95,
            extraction_method="direct_pattern",
        )
        return VerificationResult(
            verification_id="ver_test",
            product=query,
            sources=[source],
            consistency=ConsistencyReport(score=100, all_match=True),
            consolidated_ingredients=source.ingredients_text,
            sources_found=1,
        )


@pytest.fixture(autouse=True)
def fake_service(monkeypatch):
    monkeypatch.delenv("VERIFIER_API_TOKEN", raising=False)
    _FakeService.calls = []
    monkeypatch.setattr(routes, "_service_factory", _FakeService)


@pytest.fixture
def client():
    return TestClient(app)


class TestHealthEndpoint:
    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == SERVICE_NAME


class TestVerifyEndpoint:
    def test_verify_returns_result(self, client):
        response = client.post(
            "/api/v1/verify",
            json={
                "barcode": "051000012616",
                "brand": "Campbell's",
                "name": "Tomato Soup",
                "database_ingredients": "Tomato Puree, Water, Salt",
            },
        )
        assert response.status_code == 200
        data = response.json()
        assert data["verification_id"] == "ver_test"
        assert data["product"]["brand"] == "Campbell's"
        assert data["sources"][0]["domain"] == "target.com"
        assert data["consistency"]["score"] == 100

        query, database_ingredients = _FakeService.calls[0]
        assert query.name == "Tomato Soup"
        assert database_ingredients == "Tomato Puree, Water, Salt"

    def test_blank_name_rejected(self, client):
        response = client.post("/api/v1/verify", json={"brand": "Acme", "name": "   "})
        assert response.status_code == 422
        assert _FakeService.calls == []

    def test_missing_name_rejected(self, client):
        response = client.post("/api/v1/verify", json={"brand": "Acme"})
        assert response.status_code == 422


class TestAuthentication:
    def test_missing_token_rejected(self, client, monkeypatch):
        monkeypatch.setenv("VERIFIER_API_TOKEN", "secret-token")
        response = client.post("/api/v1/verify", json={"name": "Tomato Soup"})
        assert response.status_code == 401

    def test_wrong_token_rejected(self, client, monkeypatch):
        monkeypatch.setenv("VERIFIER_API_TOKEN", "secret-token")
        response = client.post(
            "/api/v1/verify",
            json={"name": "Tomato Soup"},
            headers={"Authorization": "Bearer nope"},
        )
        assert response.status_code == 401

    def test_valid_token_accepted(self, client, monkeypatch):
        monkeypatch.setenv("VERIFIER_API_TOKEN", "secret-token")
        response = client.post(
            "/api/v1/verify",
            json={"name": "Tomato Soup"},
            headers={"Authorization": "Bearer secret-token"},
        )
        assert response.status_code == 200

    def test_health_does_not_require_token(self, client, monkeypatch):
        monkeypatch.setenv("VERIFIER_API_TOKEN", "secret-token")
        assert client.get("/health").status_code == 200
