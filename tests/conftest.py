"""Pytest fixtures for the alerting pipeline and API tests."""

from collections.abc import AsyncGenerator, Generator
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from tenacity import wait_none

from airalert.api import deps
from airalert.core.alerting.cooldown import CooldownTracker
from airalert.db import models  # noqa: F401  # Imported for side effects
from airalert.db.base import Base
from airalert.db.models import Device, DeviceSubscription, User
from airalert.main import create_app
from airalert.services.dispatcher import AlertDispatcher
from airalert.services.push_gateway import PushOutcome

VALID_TOKEN = "ExponentPushToken[test-device-1]"


class FakeClock:
    """Manually advanced clock injected into the dispatcher."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class StubPushClient:
    """Records sent messages and answers with configurable outcomes."""

    def __init__(self, outcome_for=None, error: Exception | None = None):
        self.sent = []
        self.error = error
        self._outcome_for = outcome_for or (
            lambda message: PushOutcome(token=message.to, ok=True, ticket_id="ticket-ok")
        )

    def send(self, messages):
        self.sent.extend(messages)
        if self.error is not None:
            raise self.error
        return [self._outcome_for(message) for message in messages]


@pytest.fixture()
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return sessionmaker(autoflush=False, bind=db_engine, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cooldowns() -> CooldownTracker:
    return CooldownTracker(window=timedelta(hours=1))


@pytest.fixture()
def push_client() -> StubPushClient:
    return StubPushClient()


@pytest.fixture()
def dispatcher(session_factory, push_client, cooldowns, clock) -> AlertDispatcher:
    return AlertDispatcher(
        session_factory,
        push_client,
        cooldowns,
        max_workers=1,
        persist_attempts=2,
        retry_wait=wait_none(),
        clock=clock,
    )


@pytest.fixture()
def make_device(db_session):
    def _make(device_id: str = "D1", name: str = "Main Street Sensor", is_active: bool = True) -> Device:
        device = Device(device_id=device_id, name=name, is_active=is_active, location={"city": "Lagos"})
        db_session.add(device)
        db_session.commit()
        return device

    return _make


@pytest.fixture()
def make_subscriber(db_session):
    def _make(
        user_id: str = "U1",
        device_id: str = "D1",
        thresholds: dict | None = None,
        push_tokens: list[str] | None = None,
        is_active: bool = True,
    ) -> DeviceSubscription:
        user = db_session.get(User, user_id)
        if user is None:
            user = User(user_id=user_id, push_tokens=list(push_tokens or []), recent_notifications=[])
            db_session.add(user)
        subscription = DeviceSubscription(
            user_id=user_id,
            device_id=device_id,
            device_name=f"Device {device_id}",
            is_active=is_active,
            custom_thresholds=thresholds
            if thresholds is not None
            else {"pm2_5": {"enabled": True, "warning": 75, "critical": 150, "unit": "µg/m³"}},
        )
        db_session.add(subscription)
        db_session.commit()
        return subscription

    return _make


@pytest.fixture()
def client(db_session: Session, push_client, cooldowns) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_push_client] = lambda: push_client
    app.dependency_overrides[deps.get_cooldown_tracker] = lambda: cooldowns
    with TestClient(app) as test_client:
        yield test_client


@pytest_asyncio.fixture()
async def async_client(db_session: Session) -> AsyncGenerator[httpx.AsyncClient, None]:
    app = create_app()

    async def override_get_db() -> AsyncGenerator[Session, None]:
        yield db_session

    app.dependency_overrides[deps.get_db] = override_get_db

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client
