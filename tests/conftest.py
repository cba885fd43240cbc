from __future__ import annotations

import asyncio
from typing import Dict, List, Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from leadcapture.core.config import Settings
from leadcapture.db.session import create_database_engine, create_schema, create_session_factory
from leadcapture.main import create_app
from leadcapture.schemas.lead import Contact, LeadMetadata, LeadRecord
from leadcapture.services.lead_store import LeadStore

API_KEY = "test-api-key-0123456789"


class FakeRedisError(ConnectionError):
    pass


class FakePipeline:
    def __init__(self, redis: "FakeRedis"):
        self.redis = redis
        self.ops: List[tuple] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def incr(self, key):
        self.ops.append(("incr", key))
        return self

    def expireat(self, key, when):
        self.ops.append(("expireat", key, when))
        return self

    async def execute(self):
        self.redis.check_available()
        results = []
        for op in self.ops:
            if op[0] == "incr":
                value = int(self.redis.values.get(op[1], "0")) + 1
                self.redis.values[op[1]] = str(value)
                results.append(value)
            else:
                self.redis.expiry[op[1]] = op[2]
                results.append(True)
        self.ops = []
        return results


class FakeRedis:
    """In-memory stand-in for the handful of Redis calls the service makes."""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.expiry: Dict[str, int] = {}
        self.available = True

    def check_available(self):
        if not self.available:
            raise FakeRedisError("redis unavailable")

    async def get(self, key) -> Optional[str]:
        self.check_available()
        return self.values.get(key)

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    async def ping(self):
        self.check_available()
        return True


class SlowSession:
    """Session whose database round trips never finish in time."""

    def add(self, instance):
        pass

    async def _stall(self, *args, **kwargs):
        await asyncio.sleep(5)

    execute = _stall
    get = _stall
    commit = _stall

    async def rollback(self):
        pass

    async def close(self):
        pass


def make_lead(
    created_at: str = "2026-10-01T12:00:00.000000Z",
    email: str = "jane@example.com",
    name: str = "Jane Doe",
    lead_id: Optional[str] = None,
    custom_fields: Optional[Dict[str, str]] = None,
) -> LeadRecord:
    return LeadRecord(
        lead_id=lead_id or str(uuid4()),
        created_at=created_at,
        updated_at=created_at,
        source="https://example.com",
        contact=Contact(name=name, email=email, company="Acme", phone="+1 555 0100"),
        custom_fields=custom_fields or {},
        metadata=LeadMetadata(user_agent="Mozilla/5.0", ip_address="203.0.113.7", referrer="direct"),
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        environment="testing",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'leads.db'}",
        api_key=API_KEY,
        auto_create_schema=True,
        log_level="WARNING",
        max_requests_per_hour=10,
    )


@pytest_asyncio.fixture
async def engine(settings):
    engine = create_database_engine(settings)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def store(engine) -> LeadStore:
    return LeadStore(create_session_factory(engine))


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def client(settings, fake_redis):
    app = create_app(settings, redis_client=fake_redis)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"X-Api-Key": API_KEY}


@pytest.fixture
def lead_factory():
    return make_lead


@pytest.fixture
def slow_session_factory():
    return SlowSession
