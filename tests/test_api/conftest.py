"""Shared fixtures for API tests."""

import json
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from ris_collector.api.app import create_app
from ris_collector.config.settings import get_settings
from ris_collector.context import PipelineContext
from ris_collector.libraries.schemas import ApprovedLibrary
from ris_collector.storage import keys
from ris_collector.webhooks.signature import compute_signature

WEBHOOK_SECRET = "s3cret"


@pytest.fixture(autouse=True)
def api_env(monkeypatch):
    """Webhook secret configured, operator auth open, fresh settings per test."""
    monkeypatch.setenv("GITHUB_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.delenv("API_KEYS", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def context(test_settings, store, clock):
    return PipelineContext(settings=test_settings, store=store, clock=clock)


@pytest.fixture
def app(context):
    return create_app(context)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def approve(store) -> Callable[..., None]:
    def _approve(owner: str, repo: str) -> None:
        store.hashes.setdefault(keys.APPROVED_LIBRARIES, {})[f"{owner}/{repo}"] = (
            ApprovedLibrary(owner=owner, repo=repo).model_dump_json()
        )

    return _approve


@pytest.fixture
def deliver(client) -> Callable[..., Any]:
    """POST a signed webhook delivery."""

    def _deliver(
        event_type: str,
        payload: Any,
        delivery_id: str = "delivery-1",
        secret: str = WEBHOOK_SECRET,
    ):
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        return client.post(
            "/webhooks/github",
            content=body,
            headers={
                "Content-Type": "application/json",
                "X-GitHub-Event": event_type,
                "X-GitHub-Delivery": delivery_id,
                "X-Hub-Signature-256": compute_signature(body, secret),
            },
        )

    return _deliver
