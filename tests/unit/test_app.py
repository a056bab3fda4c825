"""Unit tests for root API endpoints."""

from fastapi.testclient import TestClient


def test_root(client: TestClient):
    response = client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "SafeScan"
    assert data["version"] == "0.1.0"
    assert data["status"] == "running"


def test_health(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"


def test_application_routes_are_registered():
    from safescan.api.app import app

    paths = {route.path for route in app.routes}

    assert {
        "/",
        "/health",
        "/api/v1/scan",
        "/api/v1/scan/analyze",
        "/api/v1/lookup",
        "/api/v1/ai/explain",
        "/api/v1/ai/health",
        "/api/v1/scans",
    } <= paths
