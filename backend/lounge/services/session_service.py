# Overview: Service-layer operations for gaming sessions; start, end and billing.

"""
Session Ledger

WHY: A session is the billable unit of the lounge. Starting one occupies a
station; ending one fixes the charge and opens a pending payment.

BILLING:
- HOURLY: started hours are billed in full, ceil(elapsed_seconds / 3600)
  hours at the hourly rate (60 min = 1h, 61 min = 2h, 0s = 0h)
- FIXED: flat per-game rate regardless of duration
- The rate is resolved once at start (station, then game, then configured
  default) and stored on the session, so later rate edits never rebill

TRANSACTIONS:
- start_session: claim station + insert session + stats, one commit
- end_session: close session + release station + charge row + stats, one
  commit. end_time and total_amount_cents are written exactly once.
"""

from __future__ import annotations

import math
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import GamingSession, Station, Customer, Game, Payment
from ..errors import NotFound, ValidationError, StationUnavailable, SessionNotActive
from lounge.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .station_service import get_station, claim_station, release_station
from .stats_service import StatsDelta, adjust
from .notification_service import (
    notify,
    SESSION_CREATED,
    SESSION_ENDED,
    PAYMENT_CREATED,
    STATION_UPDATED,
)


# =============================================================================
# SESSION TYPES / STATUS (CONSTANTS)
# =============================================================================

SESSION_TYPE_HOURLY = "HOURLY"
SESSION_TYPE_FIXED = "FIXED"

VALID_SESSION_TYPES = [SESSION_TYPE_HOURLY, SESSION_TYPE_FIXED]

SESSION_STATUS_ACTIVE = "ACTIVE"
SESSION_STATUS_COMPLETED = "COMPLETED"
SESSION_STATUS_CANCELLED = "CANCELLED"  # reserved, no flow sets it yet

DEFAULT_RATE_PER_HOUR_CENTS = 20_000
DEFAULT_RATE_PER_GAME_CENTS = 4_000


# =============================================================================
# BILLING
# =============================================================================

def resolve_base_rate(session_type: str, station: Station, game: Game | None = None) -> int:
    """
    Rate (cents) a new session is billed at.

    FIXED: station per-game rate, else game per-game rate, else default.
    HOURLY: station hourly rate, else default.
    Missing rates fall back to configured defaults; that is policy, not an error.
    """
    if session_type == SESSION_TYPE_FIXED:
        if station.rate_per_game_cents is not None:
            return station.rate_per_game_cents
        if game is not None and game.rate_per_game_cents is not None:
            return game.rate_per_game_cents
        return current_app.config.get("DEFAULT_RATE_PER_GAME_CENTS", DEFAULT_RATE_PER_GAME_CENTS)

    if session_type == SESSION_TYPE_HOURLY:
        if station.rate_per_hour_cents is not None:
            return station.rate_per_hour_cents
        return current_app.config.get("DEFAULT_RATE_PER_HOUR_CENTS", DEFAULT_RATE_PER_HOUR_CENTS)

    raise ValidationError(f"Invalid session_type: {session_type}. Must be one of {VALID_SESSION_TYPES}")


def billable_hours(start_time: datetime, end_time: datetime) -> int:
    seconds = (end_time - start_time).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 3600)


def elapsed_minutes(start_time: datetime, end_time: datetime) -> int:
    seconds = (end_time - start_time).total_seconds()
    if seconds <= 0:
        return 0
    return int(seconds // 60)


def calculate_charge(session_type: str, base_rate_cents: int, start_time: datetime, end_time: datetime) -> int:
    if session_type == SESSION_TYPE_FIXED:
        return base_rate_cents
    if session_type == SESSION_TYPE_HOURLY:
        return billable_hours(start_time, end_time) * base_rate_cents
    raise ValidationError(f"Invalid session_type: {session_type}")


# =============================================================================
# QUERIES
# =============================================================================

def get_session(session_id: int) -> GamingSession:
    session = db.session.query(GamingSession).filter_by(id=session_id).first()
    if not session:
        raise NotFound(f"Session {session_id} not found")
    return session


def list_active_sessions() -> list[GamingSession]:
    return (
        db.session.query(GamingSession)
        .filter_by(status=SESSION_STATUS_ACTIVE)
        .order_by(GamingSession.start_time.asc())
        .all()
    )


def list_sessions(
    status: str | None = None,
    station_id: int | None = None,
    customer_id: int | None = None,
    limit: int = 100,
) -> list[GamingSession]:
    query = db.session.query(GamingSession)
    if status:
        query = query.filter(GamingSession.status == status)
    if station_id:
        query = query.filter(GamingSession.station_id == station_id)
    if customer_id:
        query = query.filter(GamingSession.customer_id == customer_id)
    limit = max(1, min(limit or 100, 500))
    return query.order_by(GamingSession.start_time.desc(), GamingSession.id.desc()).limit(limit).all()


def get_transaction_view(session_id: int) -> dict:
    """Receipt-shaped view of a session: who, where, what, and the latest payment."""
    session = get_session(session_id)
    latest_payment = (
        db.session.query(Payment)
        .filter_by(session_id=session_id)
        .filter(Payment.kind.in_(("CHARGE", "SETTLEMENT")))
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .first()
    )
    return {
        "session": session.to_dict(),
        "station_name": session.station.name if session.station else None,
        "station_type": session.station.station_type if session.station else None,
        "customer_name": session.customer.full_name if session.customer else None,
        "game_title": session.game.title if session.game else None,
        "payment": latest_payment.to_dict() if latest_payment else None,
    }


# =============================================================================
# LIFECYCLE
# =============================================================================

def start_session(
    station_id: int,
    customer_id: int,
    session_type: str,
    game_id: int | None = None,
    planned_duration_minutes: int | None = None,
    notifier=None,
) -> GamingSession:
    """
    Open a session on an AVAILABLE station.

    Raises:
        ValidationError: bad session_type / planned duration
        NotFound: station, customer or game missing
        StationUnavailable: station is ACTIVE or in MAINTENANCE
    """
    if session_type not in VALID_SESSION_TYPES:
        raise ValidationError(f"Invalid session_type: {session_type}. Must be one of {VALID_SESSION_TYPES}")
    if planned_duration_minutes is not None:
        if isinstance(planned_duration_minutes, bool) or not isinstance(planned_duration_minutes, int):
            raise ValidationError("planned_duration_minutes must be an integer")
        if planned_duration_minutes <= 0:
            raise ValidationError("planned_duration_minutes must be positive")

    def _op():
        station = get_station(station_id)

        customer = db.session.query(Customer).filter_by(id=customer_id).first()
        if not customer:
            raise NotFound(f"Customer {customer_id} not found")

        game = None
        if game_id is not None:
            game = db.session.query(Game).filter_by(id=game_id).first()
            if not game:
                raise NotFound(f"Game {game_id} not found")

        base_rate_cents = resolve_base_rate(session_type, station, game)

        if not claim_station(station_id):
            raise StationUnavailable(
                f"Station {station_id} is not available",
                station_id=station_id,
                status=station.status,
            )

        session = GamingSession(
            station_id=station_id,
            customer_id=customer_id,
            game_id=game_id,
            session_type=session_type,
            base_rate_cents=base_rate_cents,
            planned_duration_minutes=planned_duration_minutes,
            start_time=utcnow(),
            status=SESSION_STATUS_ACTIVE,
        )
        db.session.add(session)
        adjust(StatsDelta(active_stations=1, active_users=1))
        db.session.commit()
        return session

    session = run_with_retry(_op)
    notify(notifier, SESSION_CREATED, session.to_dict())
    notify(notifier, STATION_UPDATED, session.station.to_dict())
    return session


def end_session(session_id: int, notifier=None) -> GamingSession:
    """
    Close an ACTIVE session and open its pending charge.

    A zero charge (hourly session ended within the same second) is marked
    paid immediately and no charge row is written.

    Raises:
        NotFound: session missing
        SessionNotActive: already completed/cancelled (nothing is changed)
    """
    def _op():
        session = lock_for_update(db.session.query(GamingSession).filter_by(id=session_id)).first()
        if not session:
            raise NotFound(f"Session {session_id} not found")
        if session.status != SESSION_STATUS_ACTIVE:
            raise SessionNotActive(f"Session {session_id} is not active", status=session.status)

        now = utcnow()
        total = calculate_charge(session.session_type, session.base_rate_cents, session.start_time, now)
        duration = elapsed_minutes(session.start_time, now)

        session.end_time = now
        session.duration_minutes = duration
        session.total_amount_cents = total
        session.status = SESSION_STATUS_COMPLETED

        release_station(session.station_id)

        payment = None
        if total > 0:
            session.payment_status = "PENDING"
            session.payment_method = "PENDING"
            payment = Payment(
                session_id=session.id,
                customer_id=session.customer_id,
                kind="CHARGE",
                amount_cents=total,
                payment_method="PENDING",
                status="PENDING",
                description=f"Session {session.id}",
            )
            db.session.add(payment)
        else:
            session.payment_status = "COMPLETED"
            session.payment_method = "PENDING"

        adjust(
            StatsDelta(
                active_stations=-1,
                active_users=-1,
                total_hours=duration / 60.0,
                total_revenue_cents=total,
            ),
            create=False,
        )
        db.session.commit()
        return session, payment

    session, payment = run_with_retry(_op)
    notify(notifier, SESSION_ENDED, session.to_dict())
    if payment is not None:
        notify(notifier, PAYMENT_CREATED, payment.to_dict())
    notify(notifier, STATION_UPDATED, session.station.to_dict())
    return session
