# outreach/conftest.py
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Add project root to PYTHONPATH
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from outreach.core.config import Settings
from outreach.features.access.registry import TokenRegistry
from outreach.features.trial.ledger import InMemoryUsageStore, UsageLedger
from outreach.features.trial.policy import QuotaPolicy
from outreach.tests.mocks import MASTER_IP, MASTER_TOKEN, TRIAL_TOKENS, FakeContentClient


def make_settings(**overrides) -> Settings:
    """Settings isolated from the developer's .env and shell."""
    values = dict(
        ENV="test",
        CONFIG_STRICT=False,
        BASIC_AUTH_USER="",
        BASIC_AUTH_PASS="",
        MASTER_TOKEN=MASTER_TOKEN,
        TRIAL_TOKENS=",".join(TRIAL_TOKENS),
        MAINTENANCE_ENABLED="false",
        REDIS_URL=None,
        KV_URL=None,
        ADMIN_KEY=None,
        OPENAI_API_KEY="sk-test",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def registry():
    return TokenRegistry.build(MASTER_TOKEN, TRIAL_TOKENS, master_ips=[MASTER_IP])


@pytest.fixture
def memory_store():
    return InMemoryUsageStore()


@pytest.fixture
def ledger(memory_store):
    return UsageLedger(memory_store)


@pytest.fixture
def policy(registry, ledger):
    return QuotaPolicy(registry, ledger)


@pytest.fixture
def content_client():
    return FakeContentClient()


@pytest.fixture
def app_factory(ledger, content_client):
    """Build an app sharing the test ledger and fake provider."""
    from outreach.main import create_app

    def _build(**overrides):
        return create_app(
            make_settings(**overrides),
            ledger=ledger,
            content_client=content_client,
            master_ips=[MASTER_IP],
        )

    return _build


@pytest.fixture
def client(app_factory):
    return TestClient(app_factory(), follow_redirects=False)
