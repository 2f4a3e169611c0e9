"""
Pytest fixtures for the refurb backend tests.

Provides test database setup, user fixtures, a fake timer factory and a test client.
"""

from datetime import date

import pytest
from refurb import create_app
from refurb.extensions import db
from refurb.models import Phone, Repair, StockPiece, User
from refurb.services import session_service
from refurb.services.pin_service import hash_pin


TEST_PIN = "1234"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(db_session, email: str, pin: str = TEST_PIN) -> User:
    user = User(email=email, pin_hash=hash_pin(pin), display_name=email.split("@")[0])
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user_a(db_session):
    """Workshop owner A."""
    return _make_user(db_session, "alice@atelier.test")


@pytest.fixture(scope='function')
def user_b(db_session):
    """Workshop owner B (isolation checks)."""
    return _make_user(db_session, "bob@atelier.test")


@pytest.fixture(scope='function')
def auth_headers(user_a):
    """Bearer headers for user A."""
    _session, token = session_service.create_session(user_a.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def phone_a(db_session, user_a):
    phone = Phone(
        user_id=user_a.id,
        model="iPhone 12",
        storage="128GB",
        color="Black",
        imei="356789012345678",
        condition="Very Good",
        purchase_price=200,
        purchase_date=date(2026, 9, 1),
    )
    db_session.add(phone)
    db_session.commit()
    return phone


@pytest.fixture(scope='function')
def repair_a(db_session, user_a, phone_a):
    repair = Repair(
        user_id=user_a.id,
        phone_id=phone_a.id,
        description="Screen replacement",
        labor_cost=20,
        total_cost=20,
        status="pending",
    )
    db_session.add(repair)
    db_session.commit()
    return repair


@pytest.fixture(scope='function')
def screen_piece(db_session, user_a):
    piece = StockPiece(
        user_id=user_a.id,
        name="iPhone 12 screen",
        purchase_price=15,
        quantity=4,
        phone_model="iPhone 12",
    )
    db_session.add(piece)
    db_session.commit()
    return piece


class FakeTimer:
    """Stands in for threading.Timer; the test decides when it fires."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False
        self.finished = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.finished = True
        self.function()


class FakeTimerFactory:
    """Records every timer the code under test creates."""

    def __init__(self):
        self.timers: list[FakeTimer] = []

    def __call__(self, interval, function):
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> list[FakeTimer]:
        return [t for t in self.timers if t.started and not (t.cancelled or t.finished)]

    @property
    def last(self) -> FakeTimer:
        return self.timers[-1]


@pytest.fixture(scope='function')
def timer_factory():
    return FakeTimerFactory()
