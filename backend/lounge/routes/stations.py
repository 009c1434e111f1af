# Overview: Flask API routes for stations; registry, maintenance and current session.

from flask import Blueprint, request, jsonify, current_app

from ..models import Station
from ..errors import LoungeError
from ..validation import ModelValidationPolicy, validate_payload
from ..services import station_service
from .common import error_response, json_body


STATION_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "station_type", "rate_per_hour_cents", "rate_per_game_cents"},
    required_on_create={"name", "station_type"},
)

STATION_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "station_type",
        "rate_per_hour_cents",
        "rate_per_game_cents",
        "maintenance_reason",
        "maintenance_eta",
    },
)

stations_bp = Blueprint("stations", __name__, url_prefix="/api/stations")


@stations_bp.get("")
def list_stations_route():
    """
    Query params:
    - status: AVAILABLE | ACTIVE | MAINTENANCE (optional)
    - type: PS5 | XBOX | PC | VR (optional)
    """
    stations = station_service.list_stations(
        status=request.args.get("status"),
        station_type=request.args.get("type"),
    )
    return jsonify({"items": [s.to_dict() for s in stations], "count": len(stations)}), 200


@stations_bp.post("")
def create_station_route():
    try:
        patch = validate_payload(model=Station, payload=json_body(), policy=STATION_CREATE_POLICY, partial=False)
        station = station_service.create_station(
            name=patch["name"],
            station_type=patch["station_type"],
            rate_per_hour_cents=patch.get("rate_per_hour_cents"),
            rate_per_game_cents=patch.get("rate_per_game_cents"),
        )
        return jsonify({"station": station.to_dict()}), 201
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create station")
        return jsonify({"error": "Internal server error"}), 500


@stations_bp.get("/<int:station_id>")
def get_station_route(station_id: int):
    try:
        station = station_service.get_station(station_id)
        active = station_service.get_active_session(station_id)
        return jsonify({
            "station": station.to_dict(),
            "active_session": active.to_dict() if active else None,
        }), 200
    except LoungeError as e:
        return error_response(e)


@stations_bp.patch("/<int:station_id>")
def update_station_route(station_id: int):
    try:
        payload = json_body()
        if "status" in payload:
            return jsonify({
                "error": "status cannot be set directly; use the maintenance endpoints",
                "kind": "VALIDATION_ERROR",
            }), 400
        patch = validate_payload(model=Station, payload=payload, policy=STATION_UPDATE_POLICY, partial=True)
        station = station_service.update_station(station_id, patch)
        return jsonify({"station": station.to_dict()}), 200
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update station")
        return jsonify({"error": "Internal server error"}), 500


@stations_bp.post("/<int:station_id>/maintenance")
def set_maintenance_route(station_id: int):
    """
    Request body:
    {
        "reason": "Controller drift",
        "eta": "Tomorrow 10:00"  (optional)
    }
    """
    try:
        data = json_body()
        station = station_service.set_maintenance(station_id, data.get("reason"), eta=data.get("eta"))
        return jsonify({"station": station.to_dict()}), 200
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set station maintenance")
        return jsonify({"error": "Internal server error"}), 500


@stations_bp.delete("/<int:station_id>/maintenance")
def clear_maintenance_route(station_id: int):
    try:
        station = station_service.clear_maintenance(station_id)
        return jsonify({"station": station.to_dict()}), 200
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to clear station maintenance")
        return jsonify({"error": "Internal server error"}), 500


@stations_bp.get("/<int:station_id>/active-session")
def active_session_route(station_id: int):
    try:
        station_service.get_station(station_id)
        active = station_service.get_active_session(station_id)
        return jsonify({"session": active.to_dict() if active else None}), 200
    except LoungeError as e:
        return error_response(e)
