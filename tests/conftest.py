import os

# the engine is created at import time, so these must be set first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SESSION_STORE"] = "memory"
os.environ["DB_CONNECT_MAX_RETRIES"] = "1"

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from checkout_engine.api.routes.routes import get_checkout_service
from checkout_engine.application.checkout_service import CheckoutService
from checkout_engine.domain.models import EventRef, Ticket
from checkout_engine.infrastructure.db.models import Base, Event, TicketType
from checkout_engine.infrastructure.db.session import SessionLocal, engine
from checkout_engine.infrastructure.gateways.payment_gateway import SimulatedPaymentGateway
from checkout_engine.infrastructure.repositories.session_repository import (
    InMemorySessionRepository,
)
from checkout_engine.main import app


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def event():
    return EventRef(id="evt_harbourside", title="Harbourside Live")


@pytest.fixture
def tickets():
    return {
        "early-bird": Ticket("early-bird", "Early Bird", Decimal("29.00"), "aud", available=10),
        "general": Ticket("general", "General Admission", Decimal("39.00"), "aud", available=50),
        "vip": Ticket("vip", "VIP Package", Decimal("79.00"), "aud", available=5),
        "group": Ticket("group", "Group Ticket (4 people)", Decimal("99.00"), "aud", available=8),
        "backstage": Ticket("backstage", "Backstage Pass", Decimal("149.00"), "aud", available=3),
    }


@pytest.fixture
def repository():
    return InMemorySessionRepository()


@pytest.fixture
def gateway():
    return SimulatedPaymentGateway()


@pytest.fixture
def service(repository, gateway, clock):
    return CheckoutService(
        repository=repository,
        gateway=gateway,
        gateway_retry_delay=0,
        clock=clock,
    )


@pytest.fixture
def buyer_data():
    return {
        "firstName": "Jane",
        "lastName": "Citizen",
        "email": "jane.citizen@example.com",
        "phone": "+61412345678",
    }


@pytest.fixture
def card_data():
    return {
        "cardholderName": "Jane Citizen",
        "cardNumber": "4242 4242 4242 4242",
        "expiryDate": "12/30",
        "cvv": "123",
        "zipCode": "2000",
    }


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seeded_event(db):
    event = Event(
        id="evt_harbourside",
        title="Harbourside Live",
        date_time=datetime(2026, 6, 1, 18, 30, tzinfo=timezone.utc),
        location="Darling Harbour Amphitheatre, Sydney",
    )
    db.add(event)
    db.flush()
    db.add_all(
        [
            TicketType(id="general", event_id=event.id, name="General Admission",
                       price=Decimal("39.00"), currency="aud", available=50),
            TicketType(id="vip", event_id=event.id, name="VIP Package",
                       price=Decimal("79.00"), currency="aud", available=5),
            TicketType(id="backstage", event_id=event.id, name="Backstage Pass",
                       price=Decimal("149.00"), currency="aud", available=3),
        ]
    )
    db.commit()
    return event.id


@pytest.fixture
def client(service, seeded_event):
    app.dependency_overrides[get_checkout_service] = lambda: service
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
