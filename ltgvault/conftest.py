# ltgvault/conftest.py
import os

# Must be set before ltgvault modules read settings
os.environ.setdefault("ENV", "test")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite://")
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("SITE_URL", "https://ltgvault.test")

import uuid

import pytest
from fastapi.testclient import TestClient

from ltgvault.core.database import init_engine, dispose_engine, create_all_tables
from ltgvault.core.metrics import METRICS
from ltgvault.features.accounts.service import create_account
from ltgvault.features.ai.client import get_llm_client
from ltgvault.features.credentials import store as credential_store
from ltgvault.tests.mocks import FakeLLMClient


@pytest.fixture(scope="function", autouse=True)
def fresh_db():
    """
    Fresh in-memory SQLite database per test.

    StaticPool keeps a single connection, so the database lives exactly as
    long as the engine.
    """
    dispose_engine()
    init_engine("sqlite://")
    create_all_tables()
    METRICS.reset()
    yield
    dispose_engine()


@pytest.fixture
def make_account():
    """Factory: make_account(subscribed=[Feature...], status=BillingStatus...)"""

    def _make(email=None, subscribed=(), **kwargs):
        return create_account(
            email or f"user-{uuid.uuid4().hex[:8]}@example.com",
            subscriptions={feature: True for feature in subscribed},
            **kwargs,
        )

    return _make


@pytest.fixture
def account(make_account):
    return make_account()


@pytest.fixture
def api_key(account):
    return credential_store.issue(account.id)


@pytest.fixture
def fake_llm():
    return FakeLLMClient()


@pytest.fixture
def client(fake_llm):
    from ltgvault.main import app

    app.dependency_overrides[get_llm_client] = lambda: fake_llm
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
