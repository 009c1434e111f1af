import pytest

from lounge.errors import NotFound, InvalidState, ValidationError, StationUnavailable
from lounge.models import Station, GamingSession
from lounge.services import station_service, session_service, stats_service
from lounge.time_utils import business_date


def _today_counters():
    stat = stats_service.get_day(business_date())
    return (stat.active_stations, stat.active_users, stat.total_revenue_cents) if stat else None


def test_create_station_starts_available(db_session, events):
    station = station_service.create_station("Xbox #2", "XBOX", rate_per_hour_cents=25000)

    assert station.status == "AVAILABLE"
    assert station.rate_per_hour_cents == 25000
    assert events.types() == ["STATION_CREATED"]


@pytest.mark.parametrize("name,station_type,rate", [
    ("", "PS5", None),
    ("Switch", "SWITCH", None),
    ("PS5 #9", "PS5", -1),
])
def test_create_station_rejects_bad_input(db_session, name, station_type, rate):
    with pytest.raises(ValidationError):
        station_service.create_station(name, station_type, rate_per_hour_cents=rate)
    assert db_session.query(Station).count() == 0


def test_update_station_cannot_touch_status(db_session, station):
    with pytest.raises(ValidationError):
        station_service.update_station(station.id, {"status": "ACTIVE"})

    updated = station_service.update_station(station.id, {"name": "PS5 Pro", "rate_per_game_cents": 5000})
    assert updated.name == "PS5 Pro"
    assert updated.rate_per_game_cents == 5000
    assert updated.status == "AVAILABLE"


def test_update_missing_station(db_session):
    with pytest.raises(NotFound):
        station_service.update_station(999, {"name": "Ghost"})


def test_claim_is_compare_and_set(db_session, station):
    assert station_service.claim_station(station.id) is True
    assert station_service.claim_station(station.id) is False
    db_session.commit()

    assert db_session.get(Station, station.id).status == "ACTIVE"


def test_release_leaves_maintenance_alone(db_session, station):
    station_service.set_maintenance(station.id, "Broken HDMI port")

    assert station_service.release_station(station.id) is False
    db_session.commit()
    assert db_session.get(Station, station.id).status == "MAINTENANCE"


def test_maintenance_requires_reason(db_session, station):
    with pytest.raises(ValidationError):
        station_service.set_maintenance(station.id, "  ")


@pytest.mark.parametrize("reason,eta", [
    (5, None),
    (["Broken"], None),
    ("x" * 256, None),
    ("Broken HDMI port", {"when": 1}),
    ("Broken HDMI port", "y" * 65),
])
def test_maintenance_rejects_malformed_input(db_session, station, reason, eta):
    with pytest.raises(ValidationError):
        station_service.set_maintenance(station.id, reason, eta=eta)

    db_session.expire_all()
    assert db_session.get(Station, station.id).status == "AVAILABLE"


def test_maintenance_blocks_new_sessions(db_session, station, customer, events):
    station_service.set_maintenance(station.id, "Controller drift", eta="Friday")
    version = db_session.get(Station, station.id).version_id
    stat_before = _today_counters()

    with pytest.raises(StationUnavailable):
        session_service.start_session(station.id, customer.id, "HOURLY")

    db_session.expire_all()
    refused = db_session.get(Station, station.id)
    assert refused.status == "MAINTENANCE"
    assert refused.version_id == version
    assert db_session.query(GamingSession).count() == 0
    assert _today_counters() == stat_before

    assert "STATION_MAINTENANCE" in events.types()


def test_maintenance_allowed_with_running_session(db_session, clock, station, customer, app):
    session = session_service.start_session(station.id, customer.id, "HOURLY")

    station_service.set_maintenance(station.id, "Overheating")

    assert db_session.get(Station, station.id).status == "MAINTENANCE"
    warnings = app.extensions["lounge.event_log"].entries()
    assert any("maintenance with a running session" in e["message"] for e in warnings)

    clock.advance(minutes=30)
    session_service.end_session(session.id)
    assert db_session.get(Station, station.id).status == "MAINTENANCE"


def test_clear_maintenance(db_session, clock, station, second_station, customer):
    station_service.set_maintenance(second_station.id, "Cleaning")
    cleared = station_service.clear_maintenance(second_station.id)
    assert cleared.status == "AVAILABLE"
    assert cleared.maintenance_reason is None

    session_service.start_session(station.id, customer.id, "HOURLY")
    station_service.set_maintenance(station.id, "Flicker")
    assert station_service.clear_maintenance(station.id).status == "ACTIVE"

    with pytest.raises(InvalidState):
        station_service.clear_maintenance(station.id)


def test_list_stations_filters(db_session, station, second_station):
    station_service.set_maintenance(second_station.id, "Cleaning")

    assert [s.id for s in station_service.list_stations(status="AVAILABLE")] == [station.id]
    assert [s.id for s in station_service.list_stations(station_type="PC")] == [second_station.id]


def test_get_active_session(db_session, clock, station, customer):
    assert station_service.get_active_session(station.id) is None
    session = session_service.start_session(station.id, customer.id, "HOURLY")
    assert station_service.get_active_session(station.id).id == session.id
