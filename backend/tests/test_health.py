"""
Tests for health check endpoints.
"""


class TestHealthEndpoints:
    """Test health check API endpoints."""

    def test_health_check(self, client):
        """Basic health check should return healthy status."""
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "payments-api"

    def test_detailed_health_check(self, client):
        """Detailed health check reports the database, backlog and breakers."""
        response = client.get("/api/health/detailed")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["dependencies"]["database"]["status"] == "healthy"
        assert data["notifications"]["unapplied"] == 0
        assert data["circuit_breakers"]["adyen"]["state"] == "closed"
        assert "redis" not in data["dependencies"]

    def test_correlation_id_echoed(self, client):
        """Request IDs are propagated to the response."""
        response = client.get("/api/health", headers={"X-Request-ID": "req-123"})
        assert response.headers.get("X-Request-ID") == "req-123"
