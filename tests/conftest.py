"""
Test configuration

- No real Supabase, Redis or model endpoints: every store call goes to the
  in-memory FakeSupabase in tests/fakes.py
- Environment is pinned before checkcx.core.config is imported
"""
import os

os.environ.setdefault("SUPABASE_URL", "http://supabase.test")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ["REDIS_ENABLED"] = "False"
os.environ["POLLER_ENABLED"] = "False"

import pytest

from tests.fakes import FakePinger, FakeSupabase


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def client_factory(fake_db):
    """Async client factory that counts how often the store was reached"""
    async def factory():
        factory.calls += 1
        return fake_db
    factory.calls = 0
    return factory


@pytest.fixture
def pinger():
    return FakePinger()
