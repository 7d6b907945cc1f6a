"""
Tests for API authentication.

Uses the real application so the auth dependency is not overridden; only the
database is swapped for the temporary one.
"""
import pytest
from fastapi.testclient import TestClient

from core.config import API_KEY
from core import dependencies as deps


@pytest.fixture
def authenticated_client(temp_db):
    """Create a test client for the full app with authenticated routers."""
    from main import app
    app.dependency_overrides[deps.get_database] = lambda: temp_db
    app.dependency_overrides[deps.get_optional_gemini_service] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestAuthentication:
    """Test suite for API authentication."""

    def test_missing_api_key_returns_401(self, authenticated_client):
        response = authenticated_client.get("/api/v1/records")
        assert response.status_code == 401
        assert "Missing API key" in response.json()["detail"]

    def test_invalid_api_key_returns_403(self, authenticated_client):
        response = authenticated_client.get(
            "/api/v1/records",
            headers={"X-API-Key": "invalid-key"}
        )
        assert response.status_code == 403
        assert "Invalid API key" in response.json()["detail"]

    def test_valid_api_key_allows_access(self, authenticated_client):
        response = authenticated_client.get(
            "/api/v1/records",
            headers={"X-API-Key": API_KEY}
        )
        assert response.status_code == 200
        assert response.json() == []

    def test_health_endpoint_no_auth_required(self, authenticated_client):
        response = authenticated_client.get("/health")
        assert response.status_code == 200

    def test_meta_endpoint_no_auth_required(self, authenticated_client):
        assert authenticated_client.get("/api/v1/meta/options").status_code == 200

    @pytest.mark.parametrize("method,path", [
        ("post", "/api/v1/records"),
        ("get", "/api/v1/records/1"),
        ("get", "/api/v1/medications"),
        ("post", "/api/v1/assistant/ask"),
        ("get", "/api/v1/stats"),
        ("get", "/api/v1/backups"),
        ("post", "/api/v1/backups/restore"),
    ])
    def test_protected_routes_require_auth(self, authenticated_client, method, path):
        response = getattr(authenticated_client, method)(path)
        assert response.status_code == 401

    def test_record_create_with_key(self, authenticated_client):
        response = authenticated_client.post(
            "/api/v1/records",
            json={"date": "2024-03-01", "hospital": "协和医院"},
            headers={"X-API-Key": API_KEY}
        )
        assert response.status_code == 201
        assert response.json()["hospital"] == "协和医院"
