# Overview: Flask API routes for gaming sessions; start, end and lookups.

from flask import Blueprint, request, jsonify, current_app

from ..errors import LoungeError, ValidationError
from ..services import session_service, payment_service
from .common import error_response, json_body, int_field


sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


@sessions_bp.get("")
def list_sessions_route():
    """
    Query params:
    - status: ACTIVE | COMPLETED | CANCELLED (optional)
    - station_id, customer_id: int (optional)
    - limit: int (default 100, max 500)
    """
    sessions = session_service.list_sessions(
        status=request.args.get("status"),
        station_id=request.args.get("station_id", type=int),
        customer_id=request.args.get("customer_id", type=int),
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"items": [s.to_dict() for s in sessions], "count": len(sessions)}), 200


@sessions_bp.get("/active")
def list_active_sessions_route():
    sessions = session_service.list_active_sessions()
    return jsonify({"items": [s.to_dict() for s in sessions], "count": len(sessions)}), 200


@sessions_bp.post("")
def start_session_route():
    """
    Request body:
    {
        "station_id": 1,
        "customer_id": 7,
        "session_type": "HOURLY" | "FIXED",
        "game_id": 3,  (optional)
        "planned_duration_minutes": 120  (optional)
    }

    Returns:
        201: Session started
        400: Invalid input
        404: Station, customer or game not found
        409: Station not available
    """
    try:
        data = json_body()
        session_type = data.get("session_type")
        if not session_type:
            raise ValidationError("session_type is required")

        session = session_service.start_session(
            station_id=int_field(data, "station_id", required=True),
            customer_id=int_field(data, "customer_id", required=True),
            session_type=session_type,
            game_id=int_field(data, "game_id"),
            planned_duration_minutes=int_field(data, "planned_duration_minutes"),
        )
        return jsonify({"session": session.to_dict()}), 201
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to start session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.get("/<int:session_id>")
def get_session_route(session_id: int):
    try:
        session = session_service.get_session(session_id)
        return jsonify({"session": session.to_dict()}), 200
    except LoungeError as e:
        return error_response(e)


@sessions_bp.post("/<int:session_id>/end")
def end_session_route(session_id: int):
    """
    Close a session and open its pending charge.

    Returns:
        200: Session ended, with payment summary
        404: Session not found
        409: Session not active
    """
    try:
        session = session_service.end_session(session_id)
        summary = payment_service.get_payment_summary(session_id)
        return jsonify({"session": session.to_dict(), "summary": summary}), 200
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to end session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.get("/<int:session_id>/transaction")
def session_transaction_route(session_id: int):
    try:
        return jsonify(session_service.get_transaction_view(session_id)), 200
    except LoungeError as e:
        return error_response(e)
