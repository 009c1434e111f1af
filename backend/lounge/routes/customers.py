# Overview: Flask API routes for customers and their loyalty ledger.

from flask import Blueprint, request, jsonify, current_app

from ..models import Customer
from ..errors import LoungeError
from ..validation import ModelValidationPolicy, validate_payload
from ..services import customer_service
from .common import error_response, json_body


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"full_name", "phone_number", "email"},
    required_on_create={"full_name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
def list_customers_route():
    """Query params: search (name or phone substring), limit."""
    customers = customer_service.list_customers(
        search=request.args.get("search"),
        limit=request.args.get("limit", 200, type=int),
    )
    return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)}), 200


@customers_bp.post("")
def create_customer_route():
    try:
        patch = validate_payload(model=Customer, payload=json_body(), policy=CUSTOMER_POLICY, partial=False)
        customer = customer_service.create_customer(patch)
        return jsonify({"customer": customer.to_dict()}), 201
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    try:
        return jsonify({"customer": customer_service.get_customer(customer_id).to_dict()}), 200
    except LoungeError as e:
        return error_response(e)


@customers_bp.patch("/<int:customer_id>")
def update_customer_route(customer_id: int):
    try:
        patch = validate_payload(model=Customer, payload=json_body(), policy=CUSTOMER_POLICY, partial=True)
        customer = customer_service.update_customer(customer_id, patch)
        return jsonify({"customer": customer.to_dict()}), 200
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.delete("/<int:customer_id>")
def delete_customer_route(customer_id: int):
    try:
        customer_service.delete_customer(customer_id)
        return jsonify({"deleted": True, "id": customer_id}), 200
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/loyalty")
def customer_loyalty_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
        ledger = customer_service.list_loyalty_transactions(customer_id)
        return jsonify({
            "customer_id": customer_id,
            "loyalty_points": customer.loyalty_points,
            "transactions": [t.to_dict() for t in ledger],
        }), 200
    except LoungeError as e:
        return error_response(e)
