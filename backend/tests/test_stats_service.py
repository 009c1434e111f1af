from datetime import timedelta

from lounge.models import DailyStat
from lounge.services import stats_service, session_service, payment_service
from lounge.services.stats_service import StatsDelta
from lounge.time_utils import business_date


def _today(db_session):
    return db_session.query(DailyStat).filter_by(stat_date=business_date()).one()


def test_get_or_create_is_idempotent(db_session):
    first = stats_service.get_or_create_today()
    db_session.commit()
    second = stats_service.get_or_create_today()
    db_session.commit()

    assert first.id == second.id
    assert db_session.query(DailyStat).count() == 1
    assert second.active_stations == 0
    assert second.total_revenue_cents == 0


def test_adjust_floors_counters_at_zero(db_session):
    stats_service.adjust(StatsDelta(active_stations=1, active_users=1))
    row = stats_service.adjust(StatsDelta(active_stations=-3, active_users=-2, total_revenue_cents=500))
    db_session.commit()

    assert row.active_stations == 0
    assert row.active_users == 0
    assert row.total_revenue_cents == 500


def test_adjust_without_row_is_noop_when_not_creating(db_session):
    assert stats_service.adjust(StatsDelta(active_stations=-1), create=False) is None
    assert db_session.query(DailyStat).count() == 0


def test_session_lifecycle_moves_counters(db_session, clock, station, second_station, customer):
    first = session_service.start_session(station.id, customer.id, "HOURLY")
    session_service.start_session(second_station.id, customer.id, "FIXED")

    row = _today(db_session)
    assert (row.active_stations, row.active_users) == (2, 2)

    clock.advance(minutes=90)
    session_service.end_session(first.id)

    db_session.expire_all()
    row = _today(db_session)
    assert (row.active_stations, row.active_users) == (1, 1)
    assert row.total_revenue_cents == 40000
    assert row.total_hours == 1.5


def test_end_after_rollover_does_not_create_row(db_session, clock, station, customer):
    session = session_service.start_session(station.id, customer.id, "HOURLY")
    db_session.query(DailyStat).delete()
    db_session.commit()

    clock.advance(minutes=20)
    session_service.end_session(session.id)

    assert db_session.query(DailyStat).count() == 0


def test_payment_completion_does_not_move_counters(db_session, ended_session):
    before = _today(db_session)
    revenue = before.total_revenue_cents

    payment_service.settle_full(ended_session.id, "CASH", 60000)

    db_session.expire_all()
    assert _today(db_session).total_revenue_cents == revenue


def test_recompute_rebuilds_drifted_row(db_session, clock, station, second_station, customer, game):
    first = session_service.start_session(station.id, customer.id, "HOURLY", game_id=game.id)
    session_service.start_session(second_station.id, customer.id, "FIXED", game_id=game.id)
    clock.advance(minutes=61)
    session_service.end_session(first.id)

    row = _today(db_session)
    row.active_stations = 42
    row.total_revenue_cents = 1
    db_session.commit()

    rebuilt = stats_service.recompute_day()

    assert rebuilt.active_stations == 1
    assert rebuilt.active_users == 1
    assert rebuilt.total_revenue_cents == 40000
    assert rebuilt.total_hours == 61 / 60.0
    assert rebuilt.station_utilization == {"PS5": 1, "PC": 1}
    assert rebuilt.popular_games == [{"game_id": game.id, "title": "EA FC 25", "sessions": 2}]
    assert rebuilt.recomputed_at is not None


def test_list_days_range(db_session):
    today = business_date()
    for offset in range(3):
        stats_service.get_or_create_for(today - timedelta(days=offset))
    db_session.commit()

    days = stats_service.list_days(today - timedelta(days=1), today)
    assert [d.stat_date for d in days] == [today - timedelta(days=1), today]
