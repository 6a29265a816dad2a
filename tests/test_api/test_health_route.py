"""Tests for the health endpoint and application lifespan."""

from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from ris_collector.api.app import create_app


class TestHealth:
    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["webhook_queue_length"] == 0
        assert body["components"]["github_pool"]["details"] == {"size": 2, "available": 2}

    def test_redis_down(self, client, store):
        store.healthy = False

        body = client.get("/health").json()

        assert body["status"] == "unhealthy"
        assert body["components"]["redis"]["status"] == "unhealthy"
        assert body["webhook_queue_length"] is None

    def test_request_id_generated(self, client):
        response = client.get("/health")

        assert response.headers["X-Request-ID"]

    def test_request_id_propagated(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"


class TestLifespan:
    def test_context_started_and_closed(self, context, store, monkeypatch):
        monkeypatch.setattr(store, "connect", AsyncMock())
        monkeypatch.setattr(store, "close", AsyncMock())
        app = create_app(context)

        with TestClient(app):
            assert app.state.context is context
            store.connect.assert_awaited_once()

        assert app.state.context is None
        store.close.assert_awaited_once()

    def test_root(self, client):
        assert client.get("/").json()["docs"] == "/docs"
