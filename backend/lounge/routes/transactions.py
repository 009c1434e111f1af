# Overview: Flask API routes for transaction (receipt) lookups and ad-hoc transactions.

from flask import Blueprint, jsonify, current_app

from ..errors import LoungeError
from ..services import session_service, payment_service
from .common import error_response, json_body, int_field


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("/<int:session_id>")
def get_transaction_route(session_id: int):
    """Receipt data for a session: station, customer, game and latest payment."""
    try:
        return jsonify(session_service.get_transaction_view(session_id)), 200
    except LoungeError as e:
        return error_response(e)


@transactions_bp.post("")
def create_transaction_route():
    """
    Record a standalone pending charge.

    Request body:
    {
        "amount_cents": 15000,
        "session_id": 4,  (optional)
        "customer_id": 7,  (optional)
        "description": "Snacks"  (optional)
    }
    """
    try:
        data = json_body()
        payment = payment_service.create_transaction(
            amount_cents=data.get("amount_cents"),
            session_id=int_field(data, "session_id"),
            customer_id=int_field(data, "customer_id"),
            description=data.get("description"),
        )
        return jsonify({"payment": payment.to_dict()}), 201
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500
