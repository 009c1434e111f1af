from datetime import datetime, timedelta

import pytest

from lounge.errors import NotFound, ValidationError, StationUnavailable, SessionNotActive
from lounge.models import Station, Payment, GamingSession
from lounge.services import session_service, stats_service
from lounge.time_utils import business_date


T0 = datetime(2024, 5, 1, 14, 0, 0)


def _occupancy_snapshot(db_session, station_id, now):
    station = db_session.get(Station, station_id)
    stat = stats_service.get_day(business_date(now))
    counters = (stat.active_stations, stat.active_users, stat.total_revenue_cents) if stat else None
    return station.status, station.version_id, counters


@pytest.mark.parametrize("minutes,hours", [(0, 0), (1, 1), (60, 1), (61, 2), (130, 3)])
def test_billable_hours_round_up(minutes, hours):
    assert session_service.billable_hours(T0, T0 + timedelta(minutes=minutes)) == hours


def test_calculate_charge_fixed_ignores_duration():
    end = datetime(2024, 5, 1, 19, 0, 0)
    assert session_service.calculate_charge("FIXED", 4000, T0, end) == 4000


def test_elapsed_minutes_floors():
    end = datetime(2024, 5, 1, 14, 1, 59)
    assert session_service.elapsed_minutes(T0, end) == 1


def test_resolve_base_rate_fallbacks(db_session, game):
    bare = Station(name="VR #1", station_type="VR")
    priced = Station(name="PC #2", station_type="PC", rate_per_hour_cents=30000, rate_per_game_cents=6000)

    assert session_service.resolve_base_rate("HOURLY", bare) == 20000
    assert session_service.resolve_base_rate("FIXED", bare) == 4000
    assert session_service.resolve_base_rate("HOURLY", priced) == 30000
    assert session_service.resolve_base_rate("FIXED", priced, game) == 6000

    game.rate_per_game_cents = 5000
    assert session_service.resolve_base_rate("FIXED", bare, game) == 5000


def test_start_session_occupies_station(db_session, clock, station, customer, game, events):
    session = session_service.start_session(station.id, customer.id, "HOURLY", game_id=game.id, planned_duration_minutes=90)

    assert session.status == "ACTIVE"
    assert session.base_rate_cents == 20000
    assert session.start_time == clock.now
    assert db_session.get(Station, station.id).status == "ACTIVE"
    assert events.types() == ["SESSION_CREATED", "STATION_UPDATED"]


def test_start_session_refuses_busy_station(db_session, clock, station, customer):
    session_service.start_session(station.id, customer.id, "HOURLY")
    before = _occupancy_snapshot(db_session, station.id, clock.now)

    with pytest.raises(StationUnavailable) as exc:
        session_service.start_session(station.id, customer.id, "FIXED")

    assert exc.value.details["status"] == "ACTIVE"
    assert db_session.query(GamingSession).count() == 1
    db_session.expire_all()
    assert _occupancy_snapshot(db_session, station.id, clock.now) == before


@pytest.mark.parametrize("kwargs,error", [
    ({"station_id": 999}, NotFound),
    ({"customer_id": 999}, NotFound),
    ({"game_id": 999}, NotFound),
    ({"session_type": "DAILY"}, ValidationError),
    ({"planned_duration_minutes": 0}, ValidationError),
])
def test_start_session_preconditions(db_session, station, customer, kwargs, error):
    args = {"station_id": station.id, "customer_id": customer.id, "session_type": "HOURLY"}
    args.update(kwargs)

    with pytest.raises(error):
        session_service.start_session(**args)

    assert db_session.get(Station, station.id).status == "AVAILABLE"
    assert db_session.query(GamingSession).count() == 0


@pytest.mark.parametrize("minutes,expected", [(60, 20000), (61, 40000), (130, 60000)])
def test_end_hourly_session_bills_started_hours(db_session, clock, station, customer, minutes, expected):
    session = session_service.start_session(station.id, customer.id, "HOURLY")
    clock.advance(minutes=minutes)

    ended = session_service.end_session(session.id)

    assert ended.status == "COMPLETED"
    assert ended.total_amount_cents == expected
    assert ended.duration_minutes == minutes
    assert ended.payment_status == "PENDING"
    assert db_session.get(Station, station.id).status == "AVAILABLE"

    payments = db_session.query(Payment).filter_by(session_id=session.id).all()
    assert len(payments) == 1
    assert payments[0].status == "PENDING"
    assert payments[0].amount_cents == expected


def test_end_fixed_session_uses_game_rate(db_session, clock, customer):
    station = Station(name="PS5 #3", station_type="PS5", rate_per_game_cents=5000)
    db_session.add(station)
    db_session.commit()

    session = session_service.start_session(station.id, customer.id, "FIXED")
    clock.advance(hours=3)

    assert session_service.end_session(session.id).total_amount_cents == 5000


def test_rate_change_after_start_does_not_rebill(db_session, clock, station, customer):
    session = session_service.start_session(station.id, customer.id, "HOURLY")
    station.rate_per_hour_cents = 99900
    db_session.commit()
    clock.advance(minutes=45)

    assert session_service.end_session(session.id).total_amount_cents == 20000


def test_end_session_twice_changes_nothing(db_session, clock, station, customer, events):
    session = session_service.start_session(station.id, customer.id, "HOURLY")
    clock.advance(minutes=61)
    ended = session_service.end_session(session.id)
    end_time = ended.end_time
    events.drain()

    clock.advance(minutes=30)
    with pytest.raises(SessionNotActive):
        session_service.end_session(session.id)

    again = db_session.get(GamingSession, session.id)
    assert again.end_time == end_time
    assert again.total_amount_cents == 40000
    assert db_session.query(Payment).filter_by(session_id=session.id).count() == 1
    assert events.types() == []


def test_end_missing_session(db_session):
    with pytest.raises(NotFound):
        session_service.end_session(12345)


def test_end_session_events(db_session, clock, station, customer, events):
    session = session_service.start_session(station.id, customer.id, "HOURLY")
    events.drain()
    clock.advance(minutes=10)

    session_service.end_session(session.id)

    assert events.types() == ["SESSION_ENDED", "PAYMENT_CREATED", "STATION_UPDATED"]


def test_zero_length_session_owes_nothing(db_session, clock, station, customer):
    session = session_service.start_session(station.id, customer.id, "HOURLY")

    ended = session_service.end_session(session.id)

    assert ended.total_amount_cents == 0
    assert ended.payment_status == "COMPLETED"
    assert db_session.query(Payment).count() == 0


def test_transaction_view(db_session, ended_session):
    view = session_service.get_transaction_view(ended_session.id)

    assert view["station_name"] == "PS5 #1"
    assert view["customer_name"] == "Wanjiru Kamau"
    assert view["game_title"] is None
    assert view["payment"]["amount_cents"] == 60000


def test_list_sessions(db_session, clock, station, second_station, customer):
    first = session_service.start_session(station.id, customer.id, "HOURLY")
    clock.advance(minutes=5)
    second = session_service.start_session(second_station.id, customer.id, "FIXED")
    session_service.end_session(first.id)

    assert [s.id for s in session_service.list_active_sessions()] == [second.id]
    assert [s.id for s in session_service.list_sessions(status="COMPLETED")] == [first.id]
    assert [s.id for s in session_service.list_sessions(customer_id=customer.id)] == [second.id, first.id]
