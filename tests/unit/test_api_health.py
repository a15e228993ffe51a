"""Tests for the health route and application wiring."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from src.api.main import create_app
from src.core.constants import API_VERSION


@pytest.fixture()
def client() -> TestClient:
    return TestClient(create_app())


class TestHealthEndpoint:
    def test_health_returns_ok(self, client: TestClient) -> None:
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": API_VERSION, "environment": "dev"}

    def test_version_matches_app(self, client: TestClient) -> None:
        assert client.get("/api/health").json()["version"] == client.app.version  # type: ignore[attr-defined]


class TestRouting:
    def test_usage_routes_mounted_under_api(self, client: TestClient) -> None:
        paths = client.get("/openapi.json").json()["paths"]
        assert "/api/usage/{subject_id}/{feature_slug}/record" in paths
        assert "/api/features/{feature_slug}/usage" in paths
        assert "/api/usage/reset-all" in paths

    def test_error_bodies_documented(self, client: TestClient) -> None:
        op = client.get("/openapi.json").json()["paths"]["/api/usage/{subject_id}/{feature_slug}"]["get"]
        assert {"422", "503"} <= set(op["responses"])
