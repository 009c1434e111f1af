# Overview: Service-layer operations for daily dashboard stats; counters and rebuilds.

"""
Daily Aggregate Stats

WHY: The dashboard shows today's active stations, active users, hours played
and revenue without scanning the session table on every refresh.

DESIGN:
- One DailyStat row per calendar date (unique), created zeroed on demand
- Counters move through adjust(): a single UPDATE with column arithmetic,
  so concurrent sessions never lose increments
- active_stations / active_users never go below zero
- recompute_day() rebuilds a row from sessions; incremental counters are a
  cache it can always overwrite
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DailyStat, GamingSession, Station, Game
from lounge.time_utils import business_date, utcnow
from .concurrency import run_with_retry


POPULAR_GAMES_LIMIT = 5


@dataclass(frozen=True)
class StatsDelta:
    active_stations: int = 0
    active_users: int = 0
    total_hours: float = 0.0
    total_revenue_cents: int = 0


# =============================================================================
# ROW ACCESS
# =============================================================================

def get_or_create_for(day: date) -> DailyStat:
    """
    Return the row for `day`, inserting a zeroed one if absent.

    Does not commit. A concurrent insert of the same date loses on the unique
    constraint inside a savepoint and re-reads the winner's row.
    """
    row = db.session.query(DailyStat).filter_by(stat_date=day).first()
    if row:
        return row

    try:
        with db.session.begin_nested():
            row = DailyStat(
                stat_date=day,
                active_stations=0,
                active_users=0,
                total_hours=0.0,
                total_revenue_cents=0,
                station_utilization={},
                popular_games=[],
            )
            db.session.add(row)
    except IntegrityError:
        row = db.session.query(DailyStat).filter_by(stat_date=day).one()
    return row


def get_or_create_today() -> DailyStat:
    return get_or_create_for(business_date())


def get_day(day: date) -> DailyStat | None:
    return db.session.query(DailyStat).filter_by(stat_date=day).first()


def list_days(start: date | None = None, end: date | None = None) -> list[DailyStat]:
    query = db.session.query(DailyStat)
    if start:
        query = query.filter(DailyStat.stat_date >= start)
    if end:
        query = query.filter(DailyStat.stat_date <= end)
    return query.order_by(DailyStat.stat_date.asc()).all()


# =============================================================================
# INCREMENTAL COUNTERS
# =============================================================================

def _floored(column, amount: int):
    return case((column + amount < 0, 0), else_=column + amount)


def adjust(delta: StatsDelta, *, day: date | None = None, create: bool = True) -> DailyStat | None:
    """
    Apply `delta` to the row for `day` (default today) in one UPDATE.

    create=False: a missing row makes this a no-op and returns None (used at
    session end so a day rollover does not fabricate a row for the new day).

    Does not commit; the caller's transaction owns the write.
    """
    day = day or business_date()
    if create:
        get_or_create_for(day)

    updated = (
        db.session.query(DailyStat)
        .filter(DailyStat.stat_date == day)
        .update(
            {
                DailyStat.active_stations: _floored(DailyStat.active_stations, delta.active_stations),
                DailyStat.active_users: _floored(DailyStat.active_users, delta.active_users),
                DailyStat.total_hours: DailyStat.total_hours + float(delta.total_hours),
                DailyStat.total_revenue_cents: DailyStat.total_revenue_cents + int(delta.total_revenue_cents),
                DailyStat.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
    )
    if not updated:
        return None

    row = db.session.query(DailyStat).filter_by(stat_date=day).first()
    db.session.refresh(row)
    return row


def touch_today() -> None:
    """Bump updated_at on today's row if it exists (payment completion)."""
    (
        db.session.query(DailyStat)
        .filter(DailyStat.stat_date == business_date())
        .update({DailyStat.updated_at: utcnow()}, synchronize_session=False)
    )


# =============================================================================
# REBUILD
# =============================================================================

def _day_window(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def recompute_day(day: date | None = None) -> DailyStat:
    """
    Rebuild the DailyStat row for `day` from the session table.

    - active_stations / active_users: sessions running at the end of the day
      (for today: sessions currently ACTIVE)
    - total_revenue_cents / total_hours: sessions completed during the day
    - station_utilization: sessions started that day per station type
    - popular_games: top games by sessions started that day
    """
    day = day or business_date()

    def _op():
        start, end = _day_window(day)

        if day == business_date():
            running = db.session.query(GamingSession).filter(GamingSession.status == "ACTIVE")
        else:
            running = db.session.query(GamingSession).filter(
                GamingSession.start_time < end,
                db.or_(GamingSession.end_time.is_(None), GamingSession.end_time >= end),
                GamingSession.status != "CANCELLED",
            )
        active_stations = running.with_entities(func.count(func.distinct(GamingSession.station_id))).scalar() or 0
        active_users = running.with_entities(func.count(func.distinct(GamingSession.customer_id))).scalar() or 0

        revenue_cents, minutes = (
            db.session.query(
                func.coalesce(func.sum(GamingSession.total_amount_cents), 0),
                func.coalesce(func.sum(GamingSession.duration_minutes), 0),
            )
            .filter(
                GamingSession.status == "COMPLETED",
                GamingSession.end_time >= start,
                GamingSession.end_time < end,
            )
            .one()
        )

        utilization_rows = (
            db.session.query(Station.station_type, func.count(GamingSession.id))
            .join(Station, Station.id == GamingSession.station_id)
            .filter(GamingSession.start_time >= start, GamingSession.start_time < end)
            .group_by(Station.station_type)
            .all()
        )

        game_rows = (
            db.session.query(Game.id, Game.title, func.count(GamingSession.id).label("sessions"))
            .join(Game, Game.id == GamingSession.game_id)
            .filter(GamingSession.start_time >= start, GamingSession.start_time < end)
            .group_by(Game.id, Game.title)
            .order_by(func.count(GamingSession.id).desc(), Game.title.asc())
            .limit(POPULAR_GAMES_LIMIT)
            .all()
        )

        row = get_or_create_for(day)
        row.active_stations = int(active_stations)
        row.active_users = int(active_users)
        row.total_revenue_cents = int(revenue_cents)
        row.total_hours = int(minutes) / 60.0
        row.station_utilization = {station_type: int(count) for station_type, count in utilization_rows}
        row.popular_games = [
            {"game_id": game_id, "title": title, "sessions": int(count)}
            for game_id, title, count in game_rows
        ]
        row.recomputed_at = utcnow()
        row.updated_at = utcnow()
        db.session.commit()
        return row

    return run_with_retry(_op)
