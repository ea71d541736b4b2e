import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.settings import Settings
from app.db.base import Base
from app.directory.provisioning import add_location, add_user, ensure_roles
from app.review.workflow import WorkflowEngine

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingNotifyHook:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str]] = []
        self.fail = False

    def on_transition(self, request, action, actor) -> None:
        if self.fail:
            raise RuntimeError("notification service down")
        self.calls.append((str(request.request_id), action, actor.user.value))


class RecordingPublishHook:
    def __init__(self) -> None:
        self.published: list[str] = []
        self.fail = False

    def on_approved(self, request) -> str | None:
        if self.fail:
            raise RuntimeError("calendar service down")
        self.published.append(str(request.request_id))
        return f"event-{request.request_id}"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture()
def db_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session(db_engine):
    Session = sessionmaker(bind=db_engine, autocommit=False, autoflush=False)
    with Session() as session:
        yield session


@pytest.fixture()
def directory(db_session):
    """District D1 with municipalities M1 and M2; district D2 with M3.

    coord-a1 and coord-a2 cover M1 for organization "A", coord-b1 covers M1
    for "B", coord-m2 covers M2 for "A".  Nobody below the ceiling covers M3.
    """
    ensure_roles(db_session)
    add_location(db_session, "D1", "North District", "district")
    add_location(db_session, "M1", "Riverside", "municipality", parent_id="D1")
    add_location(db_session, "M2", "Hillcrest", "municipality", parent_id="D1")
    add_location(db_session, "D2", "South District", "district")
    add_location(db_session, "M3", "Lakeview", "municipality", parent_id="D2")

    add_user(db_session, "sysadmin", "system-admin")
    add_user(db_session, "opsadmin", "operational-admin")
    add_user(db_session, "coord-a1", "coordinator", organization_type="A", coverage=["M1"])
    add_user(db_session, "coord-a2", "coordinator", organization_type="A", coverage=["M1"])
    add_user(db_session, "coord-b1", "coordinator", organization_type="B", coverage=["M1"])
    add_user(db_session, "coord-m2", "coordinator", organization_type="A", coverage=["M2"])
    add_user(db_session, "stakeholder-1", "stakeholder", organization_type="A")
    add_user(db_session, "stakeholder-2", "stakeholder", organization_type="A")
    add_user(db_session, "basic-1", "basic-user")
    db_session.commit()
    return db_session


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def hooks():
    return SimpleNamespace(notify=RecordingNotifyHook(), publish=RecordingPublishHook())


@pytest.fixture()
def make_engine(db_session, clock, hooks):
    def _make(**overrides) -> WorkflowEngine:
        settings = Settings(DATABASE_URL="sqlite+pysqlite:///:memory:", **overrides)
        return WorkflowEngine.from_session(
            db_session,
            publish_hook=hooks.publish,
            notify_hook=hooks.notify,
            settings=settings,
            clock=clock,
        )

    return _make


@pytest.fixture()
def engine(directory, make_engine):
    return make_engine()


@pytest.fixture()
def submit(engine, clock):
    """Submit a request as *requester_id*; scheduled a week out by default."""

    def _submit(
        requester_id: str = "stakeholder-1",
        location_id: str = "M1",
        organization_type: str | None = "A",
        days: int = 7,
        wf: WorkflowEngine | None = None,
        **fields,
    ):
        wf = wf or engine
        payload = {
            "title": "Community blood drive",
            "scheduled_date": clock() + timedelta(days=days),
            "start_time": "09:00",
            "end_time": "15:00",
            **fields,
        }
        location = {"location_id": location_id, "organization_type": organization_type}
        return wf.submit(wf.capture_actor(requester_id), payload, location)

    return _submit


@pytest.fixture()
def proposal(clock):
    """Reschedule payload *days* after the current fake time."""

    def _proposal(days: int = 10, note: str = "Venue is booked that week") -> dict:
        return {"proposed_date": clock() + timedelta(days=days), "note": note}

    return _proposal


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
def client(directory, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlite:///:memory:")

    from app.core.settings import get_settings

    get_settings.cache_clear()

    from app.api.deps import get_db
    from app.main import app

    def _override_db():
        yield directory

    app.dependency_overrides[get_db] = _override_db
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    get_settings.cache_clear()
    os.environ.pop("DATABASE_URL", None)
