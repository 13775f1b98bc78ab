"""
Test configuration and fixtures.
"""
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

# Configure the app for tests before importing it
TEST_DIR = Path(tempfile.mkdtemp(prefix="keygate-tests-"))
PAYLOAD_DIR = TEST_DIR / "payloads"
PAYLOAD_DIR.mkdir()
(PAYLOAD_DIR / "read").write_text("print('protected script')\n", encoding="utf-8")
(PAYLOAD_DIR / "headless").write_text("print('headless script')\n", encoding="utf-8")

ADMIN_PASSWORD = "test-admin-password-123"

os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DIR / 'keygate_test.db'}"
os.environ["ADMIN_PASSWORD"] = ADMIN_PASSWORD
os.environ["PAYLOAD_DIR"] = str(PAYLOAD_DIR)
os.environ["AUTO_CREATE_TABLES"] = "true"

from keygate.main import app
from keygate.core.config import KeyPolicy
from keygate.core.deps import get_policy
from keygate.db.base import Base
from keygate.db.session import SessionLocal, engine, get_db
from keygate.models.access_key import AccessKey
from keygate.services.gateway import BindingGateway
from keygate.services.key_store import InMemoryKeyStore
from keygate.services.lifecycle import KeyLifecycleService
from keygate.services.sql_key_store import SqlKeyStore

Base.metadata.create_all(bind=engine)

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def policy(clock: FrozenClock) -> KeyPolicy:
    return KeyPolicy(admin_secret=ADMIN_PASSWORD, clock=clock)


@pytest.fixture
def memory_store() -> InMemoryKeyStore:
    return InMemoryKeyStore()


@pytest.fixture
def gateway(memory_store: InMemoryKeyStore, policy: KeyPolicy) -> BindingGateway:
    return BindingGateway(memory_store, policy)


@pytest.fixture
def lifecycle(memory_store: InMemoryKeyStore, policy: KeyPolicy) -> KeyLifecycleService:
    return KeyLifecycleService(memory_store, policy)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a database session for the test, emptying the keys table afterwards."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.query(AccessKey).delete()
        session.commit()
        session.close()


@pytest.fixture
def sql_store(db: Session) -> SqlKeyStore:
    return SqlKeyStore(db)


@pytest.fixture(scope="function")
def client(db: Session, policy: KeyPolicy) -> Generator[TestClient, None, None]:
    """Create test client with database session and policy overrides."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_policy] = lambda: policy

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    return {"Authorization": ADMIN_PASSWORD}


@pytest.fixture
def sql_lifecycle(sql_store: SqlKeyStore, policy: KeyPolicy) -> KeyLifecycleService:
    return KeyLifecycleService(sql_store, policy)
