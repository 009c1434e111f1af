"""
Pytest fixtures for lounge backend tests.

Provides an in-memory app, per-test table wipe, a controllable clock for
billing, a scripted M-Pesa provider and a captured event stream.
"""

from datetime import timedelta

import pytest

from lounge import create_app
from lounge.extensions import db
from lounge.models import Station, Customer, Game
from lounge.services import session_service, payment_service, split_service, stats_service
from lounge.services.mobile_money_service import SimulatedMobileMoneyProvider
from lounge.services.notification_service import QueueSubscriber
from lounge.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MPESA_PROVIDER': 'simulated',
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
        app.extensions["lounge.event_log"].clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


class FrozenClock:
    """Replaces utcnow() in the billing services; advance() moves time forward."""

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope='function')
def clock(monkeypatch):
    frozen = FrozenClock(utcnow().replace(microsecond=0))
    for module in (session_service, payment_service, split_service, stats_service):
        monkeypatch.setattr(module, "utcnow", frozen)
    return frozen


@pytest.fixture(scope='function')
def provider(app, monkeypatch):
    """Fresh simulated provider installed on the app for the duration of a test."""
    sim = SimulatedMobileMoneyProvider()
    monkeypatch.setitem(app.extensions, "lounge.mpesa", sim)
    return sim


@pytest.fixture(scope='function')
def events(app):
    """Every notification published during the test."""
    queue = QueueSubscriber()
    hub = app.extensions["lounge.notifier"]
    token = hub.subscribe(queue)
    yield queue
    hub.unsubscribe(token)


@pytest.fixture(scope='function')
def station(db_session):
    station = Station(name="PS5 #1", station_type="PS5", status="AVAILABLE", rate_per_hour_cents=20000)
    db_session.add(station)
    db_session.commit()
    return station


@pytest.fixture(scope='function')
def second_station(db_session):
    station = Station(name="PC #1", station_type="PC", status="AVAILABLE")
    db_session.add(station)
    db_session.commit()
    return station


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(full_name="Wanjiru Kamau", phone_number="254712345678", loyalty_points=0)
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def game(db_session):
    game = Game(title="EA FC 25", platform="PS5", genre="Sports", is_active=True, is_popular=True)
    db_session.add(game)
    db_session.commit()
    return game


@pytest.fixture(scope='function')
def ended_session(db_session, clock, station, customer):
    """A completed 130-minute hourly session owing 60000 cents."""
    session = session_service.start_session(station.id, customer.id, "HOURLY")
    clock.advance(minutes=130)
    return session_service.end_session(session.id)
