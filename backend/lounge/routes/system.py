# Overview: Flask API routes for system health, schema version and the in-memory event log.

import time

from flask import Blueprint, Response, current_app, jsonify, request

from ..extensions import db
from ..models import Station, GamingSession
from ..services import schema_service
from lounge.time_utils import to_utc_z, utcnow


system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        station_count = db.session.query(Station).count()
        active_sessions = db.session.query(GamingSession).filter_by(status="ACTIVE").count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"stations": station_count, "active_sessions": active_sessions},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    schema = schema_service.schema_status()
    healthy = database["status"] == "healthy" and schema["ok"]
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database, "schema": schema},
    }), 200 if healthy else 503


@system_bp.get("/schema")
def schema():
    return jsonify(schema_service.schema_status()), 200


def _event_log():
    return current_app.extensions["lounge.event_log"]


@system_bp.get("/logs")
def list_logs():
    """Query params: limit (default all), format=json for a downloadable export."""
    log = _event_log()
    if request.args.get("format") == "json":
        return Response(
            log.export(),
            mimetype="application/json",
            headers={"Content-Disposition": "attachment; filename=lounge-events.json"},
        )
    entries = log.entries(request.args.get("limit", type=int))
    return jsonify({"items": entries, "count": len(entries), "capacity": log.capacity}), 200


@system_bp.delete("/logs")
def clear_logs():
    _event_log().clear()
    return jsonify({"cleared": True}), 200
