"""
Tests for health check endpoints.
"""
from unittest.mock import MagicMock

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from keygate.db.session import get_db
from keygate.main import app


class TestHealth:
    """Tests for health check endpoints."""

    def test_basic_health(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_api_health_with_database(self, client: TestClient):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["services"]["database"]["status"] == "ok"

    def test_api_health_database_down(self, client: TestClient):
        session = MagicMock()
        session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("database is locked"))
        app.dependency_overrides[get_db] = lambda: session

        response = client.get("/api/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    def test_root(self, client: TestClient):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["health"] == "/health"
