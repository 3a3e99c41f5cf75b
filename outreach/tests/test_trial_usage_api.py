"""Tests for GET /api/trial-usage."""

import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from outreach.api import trial_usage
from outreach.features.trial.ledger import ResourceClass
from outreach.tests.mocks import MASTER_TOKEN, OUTSIDE_IP


@pytest.mark.asyncio
async def test_fresh_trial_token_reports_full_allowance(app_factory):
    transport = ASGITransport(app=app_factory())
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        resp = await ac.get("/api/trial-usage", params={"trial": "trial-abc"}, headers={"x-forwarded-for": OUTSIDE_IP})

    assert resp.status_code == 200
    body = resp.json()
    assert body["isMaster"] is False
    assert body["isTrial"] is True
    assert body["articlesGenerated"] == 0
    assert body["maxArticles"] == 2
    assert body["maxTopicDiscoveryRuns"] == 2
    assert body["maxImages"] == 1
    assert body["imagesRemaining"] == 1


@pytest.mark.asyncio
async def test_usage_reflects_ledger(app_factory, ledger):
    await ledger.increment("trial-def", ResourceClass.TOPIC_DISCOVERY)

    transport = ASGITransport(app=app_factory())
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        resp = await ac.get("/api/trial-usage", headers={"x-trial-token": "trial-def", "x-forwarded-for": OUTSIDE_IP})

    body = resp.json()
    assert body["topicDiscoveryRuns"] == 1
    assert body["topicDiscoveryRunsRemaining"] == 1


def test_master_token_has_null_maxima(client):
    resp = client.get("/api/trial-usage", params={"trial": MASTER_TOKEN}, headers={"x-forwarded-for": OUTSIDE_IP})

    assert resp.status_code == 200
    body = resp.json()
    assert body["isMaster"] is True
    assert body["maxArticles"] is None
    assert body["articlesRemaining"] is None


def test_unknown_token_is_400_when_gate_not_in_front(policy):
    app = FastAPI()
    app.state.quota_policy = policy
    app.include_router(trial_usage.router)
    client = TestClient(app)

    resp = client.get("/api/trial-usage", params={"trial": "bogus"})

    assert resp.status_code == 400
    assert resp.json() == {"isMaster": False, "isTrial": False, "error": "Invalid trial token"}


def test_repeated_trial_param_reports_first_token(client, ledger):
    asyncio.run(ledger.increment("trial-abc", ResourceClass.IMAGES))

    resp = client.get("/api/trial-usage?trial=trial-abc&trial=trial-def", headers={"x-forwarded-for": OUTSIDE_IP})

    assert resp.status_code == 200
    assert resp.json()["imagesGenerated"] == 1


def test_repeated_trial_param_with_unknown_first_value_redirects(client):
    resp = client.get("/api/trial-usage?trial=bogus&trial=trial-abc", headers={"x-forwarded-for": OUTSIDE_IP})

    assert resp.status_code == 307
    assert resp.headers["location"].endswith("/not-found")
