"""
Tests for health check endpoint.
"""
from unittest.mock import MagicMock

from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from aclsync.core.database import get_db
from aclsync.main import app


def test_health_endpoint_returns_ok(client):
    """Test that /api/v1/health returns ok when DB is healthy."""
    response = client.get("/api/v1/health")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["ok"] is True
    assert data["db"] is True
    assert "environment" in data
    assert "reconcile_enabled" in data


def test_health_endpoint_with_db_failure():
    """Test that /api/v1/health returns 503 when DB is down."""
    def failing_get_db():
        db = MagicMock()
        db.execute.side_effect = SQLAlchemyError("Simulated DB failure")
        yield db

    app.dependency_overrides[get_db] = failing_get_db

    try:
        client = TestClient(app)
        response = client.get("/api/v1/health")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert "detail" in response.json()
    finally:
        app.dependency_overrides.clear()


def test_health_endpoint_trace_id_header(client):
    """RequestLoggingMiddleware adds a trace id to every response."""
    response = client.get("/api/v1/health")

    assert "X-Trace-ID" in response.headers
    assert len(response.headers["X-Trace-ID"]) > 0


def test_root_endpoint(client):
    response = client.get("/")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["message"] == "ACL Sync API"
