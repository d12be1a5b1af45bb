import os

# Keep app startup away from the on-disk default database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from courtdraw.database import get_session  # noqa: E402
from courtdraw.main import app  # noqa: E402
from courtdraw.services.notifications import RecordingNotifier, set_notifier, LoggingNotifier  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share the same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models are imported (tests/__init__.py) before create_all()
# 4. App dependency overridden to use test_engine (see client_fixture)
# 5. Tables are dropped after every test so ids start fresh
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="engine")
def engine_fixture():
    SQLModel.metadata.create_all(test_engine)
    yield test_engine
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="session", scope="function")
def session_fixture(engine):
    """Provide a test database session on a fresh schema"""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place for the
    entire duration, so the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture(name="notifier")
def notifier_fixture():
    """Capture emitted events instead of logging them"""
    recorder = RecordingNotifier()
    set_notifier(recorder)
    yield recorder
    set_notifier(LoggingNotifier())
