# tests/conftest.py
import os

# Keep the app from starting the sweeper or reaching for Kafka during tests.
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("KAFKA_ENABLED", "false")

import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from signup_service.main import app
from signup_service.api import deps
from signup_service.core.config import settings
from signup_service.db.base_class import Base
from signup_service.schemas.token import TokenPayload
from signup_service.services.instance_lifecycle import InstanceLifecycle
from signup_service.services.notifier import Notifier
from signup_service.services.signup_manager import SignupManager
import signup_service.models  # noqa: F401


@pytest.fixture(scope="function")
def engine(tmp_path):
    """A throwaway SQLite file per test, shared by every thread of that test."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'signups_test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def no_retry_backoff(monkeypatch):
    monkeypatch.setattr(settings, "SIGNUP_RETRY_BACKOFF_SECONDS", 0.0)


@pytest.fixture(scope="function")
def notifier():
    """A notifier that records calls instead of talking to Kafka."""
    return MagicMock(spec=Notifier)


@pytest.fixture(scope="function")
def manager(notifier):
    return SignupManager(notifier=notifier)


@pytest.fixture(scope="function")
def lifecycle(notifier):
    return InstanceLifecycle(notifier=notifier)


# --- Test Client Fixtures ---
class CurrentUser:
    """Mutable token stand-in so a test can switch the acting user."""

    def __init__(self):
        self.token = TokenPayload(sub="user_student_1", role="STUDENT", exp=9999999999)

    def act_as(self, user_id: str, role: str = "STUDENT"):
        self.token = TokenPayload(sub=user_id, role=role, exp=9999999999)


@pytest.fixture(scope="function")
def current_user():
    return CurrentUser()


@pytest.fixture(scope="function")
def client(session_factory, manager, lifecycle, current_user):
    """
    TestClient wired to the per-test database, with authentication and the
    notifier replaced by test doubles.
    """
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_current_user] = lambda: current_user.token
    app.dependency_overrides[deps.get_signup_manager] = lambda: manager
    app.dependency_overrides[deps.get_instance_lifecycle] = lambda: lifecycle

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides = {}
