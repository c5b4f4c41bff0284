"""Pytest configuration and shared fixtures.

Every test runs against a fresh in-memory SQLite database; the engine and
API commit for real, so isolation comes from recreating the schema per test.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("REDIS_URL", "redis://localhost:6399/0")
os.environ.setdefault("SMTP_HOST", "")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hrdesk.core.workflow.engine import WorkflowEngine
from hrdesk.core.workflow.hooks import HookRegistry
from hrdesk.core.workflow.membership import SqlRoleMembership
from hrdesk.db.base import Base
import hrdesk.db.models  # noqa: F401
from hrdesk.services.storage import LocalFileStorage


class RecordingSender:
    """Stands in for ``send_notification_sync`` and keeps every call."""

    def __init__(self):
        self.calls = []

    def __call__(self, db, event_type, submission, *, recipients=None, notes=None):
        self.calls.append({
            "event_type": event_type,
            "submission": submission,
            "recipients": list(recipients or []),
            "notes": notes,
        })
        return []

    def events(self) -> list[str]:
        return [call["event_type"].value for call in self.calls]


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    Session = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    session = Session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(
        root=str(tmp_path / "storage"),
        base_url="/files",
        max_bytes=1024 * 1024,
        allowed_extensions=["pdf", "png", "txt"],
    )


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def hooks(storage, sender):
    return HookRegistry.default(storage=storage, send=sender)


@pytest.fixture
def engine(db_session, storage, hooks):
    """Workflow engine wired to the test database, temporary storage and a recording sender."""
    return WorkflowEngine(db_session, membership=SqlRoleMembership(db_session), hooks=hooks, storage=storage)


@pytest.fixture
def app(db_session, storage, hooks):
    from hrdesk.api.deps import get_db, get_storage, get_workflow_engine
    from hrdesk.api.main import app as fastapi_app

    def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_storage] = lambda: storage
    fastapi_app.dependency_overrides[get_workflow_engine] = lambda: WorkflowEngine(
        db_session, hooks=hooks, storage=storage
    )
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client
