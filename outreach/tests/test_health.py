"""Tests for liveness and usage-store health."""

from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from outreach.features.trial.ledger import FallbackUsageStore, InMemoryUsageStore, UsageLedger
from outreach.main import create_app
from outreach.tests.mocks import MASTER_IP, FakeContentClient


def test_healthz_bypasses_gate(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_usage_store_health_memory(client):
    resp = client.get(
        "/api/health/usage-store",
        params={"now": "2026-01-01T00:00:00+00:00"},
        headers={"x-forwarded-for": MASTER_IP},
    )

    assert resp.status_code == 200
    assert resp.json() == {
        "ok": True,
        "backend": "memory",
        "durable": False,
        "latency_ms": None,
        "computed_at": "2026-01-01T00:00:00+00:00",
    }


def test_usage_store_health_reports_unreachable_primary(settings_factory):
    primary = MagicMock()
    primary.name = "redis"
    primary.ping = AsyncMock(side_effect=ConnectionError("down"))
    primary.close = AsyncMock()
    ledger = UsageLedger(FallbackUsageStore(primary, InMemoryUsageStore()))
    app = create_app(settings_factory(), ledger=ledger, content_client=FakeContentClient(), master_ips=[MASTER_IP])

    resp = TestClient(app).get("/api/health/usage-store", headers={"x-forwarded-for": MASTER_IP})

    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is False
    assert body["backend"] == "redis+memory"
    assert body["durable"] is True
