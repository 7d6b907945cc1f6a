"""
Tests for the health and readiness endpoints.

- /health: Liveness check
- /ready: Readiness check with a database check
"""
from core import dependencies as deps


def test_health_endpoint(client):
    """Test the /health liveness endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["version"] == "1.0.0"
    assert data["timestamp"].endswith("Z")


def test_ready_endpoint(client):
    """Test the /ready readiness endpoint with a working database."""
    response = client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert "timestamp" in data

    (database,) = data["dependencies"]
    assert database["name"] == "database"
    assert database["status"] == "ok"
    assert database["latency_ms"] >= 0


def test_ready_endpoint_database_unavailable(client, test_app):
    """A database that cannot be opened makes the service not ready."""
    class BrokenDatabase:
        def get_connection(self):
            raise OSError("disk unavailable")

    test_app.dependency_overrides[deps.get_database] = lambda: BrokenDatabase()

    response = client.get("/ready")

    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "not_ready"
    assert data["dependencies"][0]["status"] == "unavailable"
    assert "disk unavailable" in data["dependencies"][0]["message"]
