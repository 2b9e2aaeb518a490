"""
Shared fixtures.

The app module builds a default app at import time, so DATABASE_URL must be
set before anything from alerting_service.main is imported.
"""

import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from redis.exceptions import ConnectionError as RedisConnectionError  # noqa: E402
from sqlmodel import Session  # noqa: E402

from alerting_service.config import Settings  # noqa: E402
from alerting_service.db import build_engine, init_db  # noqa: E402
from alerting_service.main import create_app  # noqa: E402
from alerting_service.models.models import Device  # noqa: E402
from alerting_service.repository import SqlRepository  # noqa: E402

OWNER = {
    "full_name": "Ada Lovelace",
    "age": 72,
    "medical_conditions": ["hypertension", "type 2 diabetes"],
    "medications": [{"name": "metformin", "dosage": "500mg"}, {"name": "lisinopril"}],
    "emergency_contact": {
        "name": "Byron Lovelace",
        "phone": "+15550001111",
        "email": "byron@example.com",
        "relationship": "son",
    },
    "hospital_contact": {"name": "Dr. Babbage", "phone": "+15550002222", "address": "St. Mary's"},
}


# =============================================================================
# Stand-ins
# =============================================================================
class RecordingPipeline:
    def __init__(self, client):
        self.client = client
        self.ops = []

    def publish(self, channel, message):
        self.ops.append(("publish", channel, message))

    def set(self, key, value):
        self.ops.append(("set", key, value))

    def execute(self):
        if self.client.fail:
            raise RedisConnectionError("redis down")
        for op, key, value in self.ops:
            getattr(self.client, op)(key, value)
        self.ops = []


class RecordingRedis:
    """Just enough of redis.Redis for the broadcaster and health check."""

    def __init__(self):
        self.fail = False
        self.published = []
        self.store = {}

    def pipeline(self):
        return RecordingPipeline(self)

    def publish(self, channel, message):
        if self.fail:
            raise RedisConnectionError("redis down")
        self.published.append((channel, json.loads(message)))
        return 1

    def set(self, key, value):
        if self.fail:
            raise RedisConnectionError("redis down")
        self.store[key] = value
        return True

    def get(self, key):
        if self.fail:
            raise RedisConnectionError("redis down")
        return self.store.get(key)

    def delete(self, key):
        if self.fail:
            raise RedisConnectionError("redis down")
        return 1 if self.store.pop(key, None) is not None else 0

    def ping(self):
        if self.fail:
            raise RedisConnectionError("redis down")
        return True

    def events(self, channel):
        return [message["event"] for ch, message in self.published if ch == channel]


class RecordingTransport:
    def __init__(self):
        self.sent = []
        self.failing = set()

    def send(self, channel, recipient, alert):
        if channel in self.failing:
            raise RuntimeError(f"{channel.value} provider unavailable")
        self.sent.append((channel, recipient.address, alert.id))
        return True


# =============================================================================
# Fixtures
# =============================================================================
@pytest.fixture
def settings():
    return Settings(DATABASE_URL="sqlite://")


@pytest.fixture
def fake_redis():
    return RecordingRedis()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def app(settings, fake_redis, transport):
    return create_app(settings, redis_client=fake_redis, transport=transport)


@pytest.fixture
def client(app):
    # Context manager runs the lifespan, which creates the tables
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def session():
    engine = build_engine("sqlite://")
    init_db(engine)
    with Session(engine, expire_on_commit=False) as db_session:
        yield db_session
    engine.dispose()


@pytest.fixture
def repository(session):
    return SqlRepository(session)


@pytest.fixture
def device(repository):
    return repository.add_device(
        Device(
            device_id="LL-001",
            device_name="Wristband A",
            user_id="user-42",
            owner=json.loads(json.dumps(OWNER)),
        )
    )
