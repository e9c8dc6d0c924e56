"""Pytest fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.core.deps import get_dispatcher, get_store
from app.core.security import hash_password
from app.db.base import Base
from app.db.memory_store import MemoryStore
from app.db.session import make_engine
from app.db.sql_store import SqlAlchemyStore
from app.main import app
from app.models import AlarmConfig, EmergencyContact, EscalationEvent, User  # noqa: F401 - register for create_all
from app.services.escalation_service import EmergencyDispatcher
from helpers import RecordingNotifier, utc

TEST_DATABASE_URL = "sqlite:///./test.db"

engine = make_engine(TEST_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def sql_store():
    """SQL store on a fresh schema."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield SqlAlchemyStore(TestingSessionLocal)
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def dispatcher(memory_store, notifier):
    return EmergencyDispatcher(memory_store, notifier)


@pytest.fixture
def client(sql_store, notifier):
    """Test client with overridden store and notifier."""
    app.dependency_overrides[get_store] = lambda: sql_store
    app.dependency_overrides[get_dispatcher] = lambda: EmergencyDispatcher(sql_store, notifier)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def seeded(memory_store):
    """User with contact and an active 08:00 / 12h alarm due at 2024-01-01 08:00 UTC."""
    user = memory_store.create_user(
        email="ana@test.com",
        password=hash_password("secret1"),
        full_name="Ana Souza",
        whatsapp="+55 11 91234-5678",
    )
    contact = memory_store.create_emergency_contact(user.id, "Maria", "+55 11 99876-5432")
    config = memory_store.create_alarm_config(
        user_id=user.id,
        time="08:00",
        repeat_interval=12,
        ringtone="tone-1",
        is_active=True,
        next_alarm=utc(2024, 1, 1, 8, 0),
    )
    return user, contact, config
