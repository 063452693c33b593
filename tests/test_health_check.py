from unittest.mock import patch

import pytest

from modules.core.models import OutboxEvent


class TestHealthCheck:
    def test_health_check_returns_200(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert "services" in data

    def test_health_check_reports_database_status(self, client):
        response = client.get("/health")
        data = response.json()
        assert data["services"]["database"]["status"] == "up"
        assert "response_time_ms" in data["services"]["database"]

    def test_health_check_reports_cache_status(self, client):
        response = client.get("/health")
        data = response.json()
        assert data["services"]["cache"]["status"] == "up"
        assert "response_time_ms" in data["services"]["cache"]

    def test_health_check_reports_pending_outbox_events(self, client):
        OutboxEvent.objects.create(
            event_type="OrderStatusChanged",
            payload={},
            aggregate_id="x",
            topic="orders",
        )
        data = client.get("/health").json()
        assert data["services"]["database"]["pending_outbox_events"] == 1

    def test_cache_outage_returns_503(self, client):
        with patch(
            "modules.core.views._check_cache", side_effect=ConnectionError("down")
        ):
            response = client.get("/health")
        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["services"]["cache"]["status"] == "down"
