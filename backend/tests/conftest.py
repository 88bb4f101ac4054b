"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from livepos.core.config import Settings
from livepos.core.rate_limit import limiter
from livepos.core.rbac import ADMIN_SUBJECT, Caller, StaffRole, UserRole
from livepos.core.security import create_access_token
from livepos.db.persistence import StateRepository
from livepos.main import create_app
from livepos.services import Dispatcher, StateStore

START = datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock for the dispatcher."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway data directory."""
    return Settings(_env_file=None, data_dir=tmp_path / "data", backup_retention=5)


@pytest.fixture
def repository(settings: Settings) -> StateRepository:
    return StateRepository(settings.data_file, settings.backup_dir, settings.backup_retention)


@pytest.fixture
def store(repository: StateRepository) -> StateStore:
    store = StateStore(repository)
    store.load()
    return store


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dispatcher(store: StateStore, clock: FakeClock) -> Dispatcher:
    return Dispatcher(store, clock=clock)


@pytest.fixture
def admin() -> Caller:
    return Caller(role=UserRole.ADMIN, subject=ADMIN_SUBJECT, username="Admin")


@pytest.fixture
def run(dispatcher: Dispatcher, admin: Caller):
    """Dispatch a command, as admin unless another caller is given."""
    def _run(event, data=None, caller=None):
        return dispatcher.dispatch(event, data, caller or admin)
    return _run


@pytest.fixture
def make_staff(run):
    """Create a staff account and return a Caller for it."""
    def _make(username="cashier1", password="pass1234", role="cashier"):
        reply = run("staff:create", {"username": username, "password": password, "role": role})
        assert reply["ok"], reply
        staff = reply["staff"]
        return Caller(role=UserRole.STAFF, subject=staff["id"], username=username,
                      staff_role=StaffRole(role))
    return _make


@pytest.fixture
def staff(make_staff) -> Caller:
    return make_staff()


@pytest.fixture
def place_order(run):
    """Create an order for the seeded Cola (price 6) and return it."""
    def _place(qty=1, caller=None, **extra):
        data = {
            "items": [{"itemId": "item-cola", "qty": qty}],
            "customerName": "Sam",
            "tableNumber": "4",
            **extra,
        }
        reply = run("order:create", data, caller)
        assert reply["ok"], reply
        return reply["order"]
    return _place


@pytest.fixture
def app(settings: Settings):
    return create_app(settings)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Test client with the lifespan running (state loaded)."""
    # Disable rate limiters during tests to avoid flaky failures
    limiter.enabled = False
    with TestClient(app) as test_client:
        yield test_client
    limiter.enabled = True


@pytest.fixture
def admin_token() -> str:
    return create_access_token(data={"sub": ADMIN_SUBJECT, "role": "admin", "username": "Admin"})
