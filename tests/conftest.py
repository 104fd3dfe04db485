from datetime import datetime, timedelta, timezone

import bcrypt
import pytest

from landguard.engine import build_in_memory_engine
from landguard.models.entities import Identity
from landguard.permissions import IdentityStatus, Role

SECRET = "test-signing-secret"
PASSWORD = "correct horse battery staple"


class FakeClock:
    """Manually advanced clock; every component under test reads time from it."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


def hash_password(password):
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=4)).decode()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(scope="session")
def password_hash():
    return hash_password(PASSWORD)


@pytest.fixture
def owner():
    return Identity(id="U-OWNER", role=Role.OWNER, email="owner@example.com")


@pytest.fixture
def manager():
    return Identity(id="U-MANAGER", role=Role.MANAGER, email="manager@example.com")


@pytest.fixture
def worker():
    return Identity(id="U-WORKER", role=Role.FIELD_WORKER, email="user@example.com")


@pytest.fixture
def other_worker():
    return Identity(id="U-WORKER-2", role=Role.FIELD_WORKER, email="other@example.com")


@pytest.fixture
def inactive_manager():
    return Identity(id="U-GONE", role=Role.MANAGER, status=IdentityStatus.INACTIVE, email="gone@example.com")


@pytest.fixture
def engine(clock, password_hash, owner, manager, worker, other_worker, inactive_manager):
    engine = build_in_memory_engine(clock=clock, secret=SECRET)
    for identity in (owner, manager, worker, other_worker, inactive_manager):
        engine.identity_store.put(identity, password_hash)
    return engine
