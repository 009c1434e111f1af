# Overview: Flask API routes for split payments; plan editing and per-part settlement.

from flask import Blueprint, jsonify, current_app

from ..errors import LoungeError, ValidationError
from ..services import split_service
from .common import error_response, json_body, int_field


splits_bp = Blueprint("splits", __name__, url_prefix="/api/splits")


def _split_body(split):
    body = split.to_dict()
    body["balance"] = split_service.split_balance(split)
    return body


@splits_bp.post("")
def create_split_route():
    """
    Request body:
    {
        "part_count": 3,
        "session_id": 12,  (optional; total defaults to its balance)
        "total_amount_cents": 90000  (required without a session)
    }
    """
    try:
        data = json_body()
        split = split_service.create_split(
            part_count=int_field(data, "part_count", required=True),
            total_amount_cents=int_field(data, "total_amount_cents"),
            session_id=int_field(data, "session_id"),
        )
        return jsonify({"split": _split_body(split)}), 201
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create split")
        return jsonify({"error": "Internal server error"}), 500


@splits_bp.get("/<int:split_id>")
def get_split_route(split_id: int):
    try:
        return jsonify({"split": _split_body(split_service.get_split(split_id))}), 200
    except LoungeError as e:
        return error_response(e)


@splits_bp.post("/<int:split_id>/parts")
def add_part_route(split_id: int):
    try:
        return jsonify({"split": _split_body(split_service.add_part(split_id))}), 200
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add split part")
        return jsonify({"error": "Internal server error"}), 500


@splits_bp.delete("/<int:split_id>/parts/<int:index>")
def remove_part_route(split_id: int, index: int):
    try:
        return jsonify({"split": _split_body(split_service.remove_part(split_id, index))}), 200
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove split part")
        return jsonify({"error": "Internal server error"}), 500


@splits_bp.patch("/<int:split_id>/parts/<int:index>")
def set_part_amount_route(split_id: int, index: int):
    """Request body: {"amount_cents": 50000}. May leave the split unbalanced."""
    try:
        data = json_body()
        split = split_service.set_part_amount(split_id, index, int_field(data, "amount_cents", required=True))
        return jsonify({"split": _split_body(split)}), 200
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set split part amount")
        return jsonify({"error": "Internal server error"}), 500


@splits_bp.post("/<int:split_id>/parts/<int:index>/pay")
def pay_part_route(split_id: int, index: int):
    """
    Request body:
    {
        "method": "CASH" | "MPESA",
        "amount_cents": 30000,  (optional; must equal the part)
        "customer_id": 7,  (optional)
        "reference": "QAB12XYZ"  (optional)
    }

    Returns:
        200: Part paid
        409: Split unbalanced (body carries the balance) or part already paid
    """
    try:
        data = json_body()
        method = data.get("method")
        if not method:
            raise ValidationError("method is required")
        payment = split_service.pay_part(
            split_id,
            index,
            method,
            amount_cents=int_field(data, "amount_cents"),
            customer_id=int_field(data, "customer_id"),
            reference=data.get("reference"),
        )
        split = split_service.get_split(split_id)
        return jsonify({"payment": payment.to_dict(), "split": _split_body(split)}), 200
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to pay split part")
        return jsonify({"error": "Internal server error"}), 500
