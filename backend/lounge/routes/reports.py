# Overview: Flask API routes for reports; read-only JSON for charts and exports.

from flask import Blueprint, jsonify

from ..errors import LoungeError
from ..services import reporting_service
from .common import error_response, date_arg


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/today")
def today_report_route():
    return jsonify(reporting_service.today_summary()), 200


@reports_bp.get("/customer-activity")
def customer_activity_route():
    """Query params: start, end (YYYY-MM-DD; default last 7 days)."""
    try:
        items = reporting_service.customer_activity(date_arg("start"), date_arg("end"))
        return jsonify({"items": items}), 200
    except LoungeError as e:
        return error_response(e)


@reports_bp.get("/payment-methods")
def payment_methods_route():
    try:
        items = reporting_service.payment_method_breakdown(date_arg("start"), date_arg("end"))
        return jsonify({"items": items}), 200
    except LoungeError as e:
        return error_response(e)


@reports_bp.get("/games")
def game_performance_route():
    try:
        return jsonify(reporting_service.game_performance(date_arg("start"), date_arg("end"))), 200
    except LoungeError as e:
        return error_response(e)


@reports_bp.get("/loyalty")
def loyalty_report_route():
    return jsonify({"tiers": reporting_service.loyalty_report()}), 200


@reports_bp.get("/revenue")
def revenue_report_route():
    try:
        return jsonify(reporting_service.revenue_report(date_arg("start"), date_arg("end"))), 200
    except LoungeError as e:
        return error_response(e)


@reports_bp.get("/daily-stats")
def daily_stats_route():
    try:
        items = reporting_service.daily_stats(date_arg("start"), date_arg("end"))
        return jsonify({"items": items}), 200
    except LoungeError as e:
        return error_response(e)
