# Overview: Flask API routes for daily dashboard stats.

from flask import Blueprint, jsonify, current_app

from ..extensions import db
from ..errors import LoungeError, NotFound, ValidationError
from ..services import stats_service
from lounge.time_utils import parse_iso_date
from .common import error_response, json_body


stats_bp = Blueprint("stats", __name__, url_prefix="/api/stats")


@stats_bp.get("/today")
def today_stats_route():
    """Today's row; created zeroed on first read of the day."""
    try:
        row = stats_service.get_or_create_today()
        db.session.commit()
        return jsonify({"stats": row.to_dict()}), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to load today's stats")
        return jsonify({"error": "Internal server error"}), 500


@stats_bp.get("/<day>")
def day_stats_route(day: str):
    try:
        try:
            stat_date = parse_iso_date(day)
        except ValueError:
            raise ValidationError("date must be YYYY-MM-DD")
        row = stats_service.get_day(stat_date)
        if not row:
            raise NotFound(f"No stats recorded for {day}")
        return jsonify({"stats": row.to_dict()}), 200
    except LoungeError as e:
        return error_response(e)


@stats_bp.post("/recompute")
def recompute_stats_route():
    """Request body: {"date": "2024-05-01"} (optional, defaults to today)."""
    try:
        raw = json_body().get("date")
        try:
            stat_date = parse_iso_date(raw) if raw else None
        except ValueError:
            raise ValidationError("date must be YYYY-MM-DD")
        row = stats_service.recompute_day(stat_date)
        return jsonify({"stats": row.to_dict()}), 200
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to recompute stats")
        return jsonify({"error": "Internal server error"}), 500
