# Overview: Flask API routes for payments; cash, M-Pesa and balance queries.

"""
Payment API

DESIGN:
- Cash settles immediately against a completed session
- M-Pesa is two-step: initiate (STK push or QR), then poll the status
  endpoint until the request is COMPLETED, FAILED or UNKNOWN
- Every error body carries "kind" so the till can tell a bad amount from a
  provider outage
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import LoungeError, ValidationError
from ..services import payment_service, mobile_money_service
from .common import error_response, json_body, int_field


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


# =============================================================================
# QUERIES
# =============================================================================

@payments_bp.get("")
def list_payments_route():
    payments = payment_service.list_payments(
        status=request.args.get("status"),
        method=request.args.get("method"),
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)}), 200


@payments_bp.get("/sessions/<int:session_id>/summary")
def session_summary_route(session_id: int):
    """
    Returns:
    - total_amount_cents / paid_cents / remaining_cents
    - payment_status, is_fully_paid
    - payments
    """
    try:
        return jsonify(payment_service.get_payment_summary(session_id)), 200
    except LoungeError as e:
        return error_response(e)


@payments_bp.get("/customers/<int:customer_id>")
def customer_payments_route(customer_id: int):
    try:
        payments = payment_service.list_customer_payments(customer_id)
        return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)}), 200
    except LoungeError as e:
        return error_response(e)


# =============================================================================
# CASH / AD-HOC SETTLEMENT
# =============================================================================

@payments_bp.post("/cash")
def cash_payment_route():
    """
    Request body:
    {
        "session_id": 12,
        "amount_cents": 40000,
        "customer_id": 7  (optional, earns loyalty points)
    }

    Returns:
        201: Payment recorded, with updated summary
        400: Invalid amount
        404: Session or customer not found
        409: Session active or already paid
    """
    try:
        data = json_body()
        session_id = int_field(data, "session_id", required=True)
        payment = payment_service.settle_full(
            session_id=session_id,
            method=payment_service.METHOD_CASH,
            amount_cents=data.get("amount_cents"),
            customer_id=int_field(data, "customer_id"),
            reference=data.get("reference"),
        )
        return jsonify({
            "payment": payment.to_dict(),
            "summary": payment_service.get_payment_summary(session_id),
        }), 201
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record cash payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/<int:payment_id>/settle")
def settle_payment_route(payment_id: int):
    """
    Complete a pending payment.

    Request body:
    {
        "method": "CASH" | "MPESA",
        "customer_id": 7,  (optional)
        "reference": "QAB12XYZ"  (optional)
    }
    """
    try:
        data = json_body()
        method = data.get("method")
        if not method:
            raise ValidationError("method is required")
        payment = payment_service.settle_transaction(
            payment_id,
            method,
            customer_id=int_field(data, "customer_id"),
            reference=data.get("reference"),
        )
        return jsonify({"payment": payment.to_dict()}), 200
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to settle payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# M-PESA
# =============================================================================

def _mpesa_target(data: dict) -> dict:
    return {
        "amount_cents": int_field(data, "amount_cents"),
        "session_id": int_field(data, "session_id"),
        "payment_id": int_field(data, "payment_id"),
        "split_id": int_field(data, "split_id"),
        "split_index": int_field(data, "split_index"),
        "customer_id": int_field(data, "customer_id"),
    }


@payments_bp.post("/mpesa")
def mpesa_initiate_route():
    """
    Start an STK push.

    Request body:
    {
        "phone_number": "254712345678",
        "session_id": 12,  (or "payment_id", or "split_id" + "split_index")
        "amount_cents": 40000,  (optional for sessions: defaults to the balance)
        "customer_id": 7  (optional)
    }

    Returns:
        202: Request pending; poll /mpesa/status/<checkout_id>
        502: Provider unreachable (nothing recorded)
    """
    try:
        data = json_body()
        mm_request = mobile_money_service.initiate_stk_push(
            phone_number=data.get("phone_number"),
            **_mpesa_target(data),
        )
        return jsonify({"request": mm_request.to_dict(), "checkout_id": mm_request.checkout_id}), 202
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to initiate M-Pesa payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/mpesa/status/<checkout_id>")
def mpesa_status_route(checkout_id: str):
    try:
        mm_request = mobile_money_service.check_request(checkout_id)
        return jsonify({"request": mm_request.to_dict(), "status": mm_request.status}), 200
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to check M-Pesa status")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/mpesa/qr")
def mpesa_qr_route():
    try:
        data = json_body()
        mm_request, qr_image = mobile_money_service.generate_qr_payment(
            account_reference=data.get("account_reference"),
            **_mpesa_target(data),
        )
        return jsonify({
            "request": mm_request.to_dict(),
            "request_id": mm_request.checkout_id,
            "qr_image": qr_image,
        }), 202
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to generate M-Pesa QR")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/mpesa/qr/status/<request_id>")
def mpesa_qr_status_route(request_id: str):
    try:
        mm_request = mobile_money_service.check_request(request_id)
        return jsonify({"request": mm_request.to_dict(), "status": mm_request.status}), 200
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to check M-Pesa QR status")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/mpesa/requests")
def mpesa_requests_route():
    """Outstanding and resolved M-Pesa requests; ?status=UNKNOWN for manual reconciliation."""
    requests_ = mobile_money_service.list_requests(
        status=request.args.get("status"),
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"items": [r.to_dict() for r in requests_], "count": len(requests_)}), 200
