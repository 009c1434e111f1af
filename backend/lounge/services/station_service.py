# Overview: Service-layer operations for stations; registry, maintenance and occupancy transitions.

"""
Station Registry

LIFECYCLE:
- AVAILABLE -> ACTIVE: a session starts (claim_station)
- ACTIVE -> AVAILABLE: the session ends (release_station)
- any -> MAINTENANCE: operator takes the station out of service
- MAINTENANCE -> AVAILABLE/ACTIVE: clear_maintenance

Status is only moved by the functions in this module. claim/release are
conditional UPDATEs so two requests cannot both take the same station.

KNOWN GAP: set_maintenance is allowed while a session is running. The session
keeps billing; release_station then leaves the station in MAINTENANCE.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Station, GamingSession
from ..errors import NotFound, InvalidState, ValidationError
from ..validation import enforce_rules_station
from lounge.time_utils import utcnow
from .concurrency import compare_and_set, run_with_retry
from .notification_service import notify, STATION_CREATED, STATION_UPDATED, STATION_MAINTENANCE


logger = logging.getLogger(__name__)


# =============================================================================
# STATION STATUS (CONSTANTS)
# =============================================================================

STATION_STATUS_AVAILABLE = "AVAILABLE"
STATION_STATUS_ACTIVE = "ACTIVE"
STATION_STATUS_MAINTENANCE = "MAINTENANCE"

VALID_STATION_STATUSES = [
    STATION_STATUS_AVAILABLE,
    STATION_STATUS_ACTIVE,
    STATION_STATUS_MAINTENANCE,
]

STATION_MUTABLE_FIELDS = {
    "name",
    "station_type",
    "rate_per_hour_cents",
    "rate_per_game_cents",
    "maintenance_reason",
    "maintenance_eta",
}

# Column widths of Station.maintenance_reason / maintenance_eta
MAX_MAINTENANCE_REASON = 255
MAX_MAINTENANCE_ETA = 64


# =============================================================================
# QUERIES
# =============================================================================

def get_station(station_id: int) -> Station:
    station = db.session.query(Station).filter_by(id=station_id).first()
    if not station:
        raise NotFound(f"Station {station_id} not found")
    return station


def list_stations(status: str | None = None, station_type: str | None = None) -> list[Station]:
    query = db.session.query(Station)
    if status:
        query = query.filter(Station.status == status)
    if station_type:
        query = query.filter(Station.station_type == station_type)
    return query.order_by(Station.name.asc(), Station.id.asc()).all()


def get_active_session(station_id: int) -> GamingSession | None:
    return (
        db.session.query(GamingSession)
        .filter_by(station_id=station_id, status="ACTIVE")
        .order_by(GamingSession.start_time.desc())
        .first()
    )


# =============================================================================
# REGISTRY
# =============================================================================

def create_station(
    name: str,
    station_type: str,
    rate_per_hour_cents: int | None = None,
    rate_per_game_cents: int | None = None,
    notifier=None,
) -> Station:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    enforce_rules_station({
        "station_type": station_type,
        "rate_per_hour_cents": rate_per_hour_cents,
        "rate_per_game_cents": rate_per_game_cents,
    })

    def _op():
        station = Station(
            name=name,
            station_type=station_type,
            status=STATION_STATUS_AVAILABLE,
            rate_per_hour_cents=rate_per_hour_cents,
            rate_per_game_cents=rate_per_game_cents,
        )
        db.session.add(station)
        db.session.commit()
        return station

    station = run_with_retry(_op)
    notify(notifier, STATION_CREATED, station.to_dict())
    return station


def update_station(station_id: int, patch: dict, notifier=None) -> Station:
    """
    Apply a validated patch. Status is not writable here; use the
    maintenance functions or the session lifecycle.
    """
    if "status" in patch:
        raise ValidationError("status cannot be set directly")
    enforce_rules_station(patch)
    if "name" in patch and not (patch["name"] or "").strip():
        raise ValidationError("name cannot be blank")

    def _op():
        station = get_station(station_id)
        for k, v in patch.items():
            if k in STATION_MUTABLE_FIELDS:
                setattr(station, k, v)
        station.updated_at = utcnow()
        db.session.commit()
        return station

    station = run_with_retry(_op)
    notify(notifier, STATION_UPDATED, station.to_dict())
    return station


def set_maintenance(station_id: int, reason: str, eta=None, notifier=None) -> Station:
    if reason is not None and not isinstance(reason, str):
        raise ValidationError("reason must be a string")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required")
    if len(reason) > MAX_MAINTENANCE_REASON:
        raise ValidationError(f"reason exceeds max length {MAX_MAINTENANCE_REASON}")
    if eta is not None:
        if not isinstance(eta, str):
            raise ValidationError("eta must be a string")
        eta = eta.strip() or None
        if eta and len(eta) > MAX_MAINTENANCE_ETA:
            raise ValidationError(f"eta exceeds max length {MAX_MAINTENANCE_ETA}")

    def _op():
        station = get_station(station_id)
        if station.status == STATION_STATUS_ACTIVE:
            logger.warning(
                "Station %s put into maintenance with a running session",
                station_id,
                extra={"component": "stations", "details": {"station_id": station_id}},
            )
        station.status = STATION_STATUS_MAINTENANCE
        station.maintenance_reason = reason
        station.maintenance_eta = eta
        station.updated_at = utcnow()
        db.session.commit()
        return station

    station = run_with_retry(_op)
    notify(notifier, STATION_MAINTENANCE, station.to_dict())
    return station


def clear_maintenance(station_id: int, notifier=None) -> Station:
    def _op():
        station = get_station(station_id)
        if station.status != STATION_STATUS_MAINTENANCE:
            raise InvalidState(f"Station {station_id} is not in maintenance", status=station.status)
        running = get_active_session(station_id)
        station.status = STATION_STATUS_ACTIVE if running else STATION_STATUS_AVAILABLE
        station.maintenance_reason = None
        station.maintenance_eta = None
        station.updated_at = utcnow()
        db.session.commit()
        return station

    station = run_with_retry(_op)
    notify(notifier, STATION_UPDATED, station.to_dict())
    return station


# =============================================================================
# OCCUPANCY (called inside the session transaction, never commit)
# =============================================================================

def claim_station(station_id: int) -> bool:
    """AVAILABLE -> ACTIVE, atomically. False when the station was not available."""
    return compare_and_set(Station, station_id, "status", STATION_STATUS_AVAILABLE, STATION_STATUS_ACTIVE)


def release_station(station_id: int) -> bool:
    """
    ACTIVE -> AVAILABLE, atomically. A station moved to MAINTENANCE while the
    session ran stays in MAINTENANCE and this returns False.
    """
    return compare_and_set(Station, station_id, "status", STATION_STATUS_ACTIVE, STATION_STATUS_AVAILABLE)
